"""Tabular dumps of merchant and transaction records as CSV, XLSX or PDF."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO

from fastapi import HTTPException, status
from openpyxl import Workbook
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from loyalty_dashboard.repositories.records_repository import RecordsRepository

logger = logging.getLogger(__name__)

MERCHANT_COLUMNS = ("merchant_name", "keyword_code", "uniq_merchant", "category", "cluster", "branch", "region")
TRANSACTION_COLUMNS = ("transaction_at", "keyword_code", "merchant_name", "status", "qty", "point_redeem", "msisdn")

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}

PAGE_SIZE = (600, 800)
PAGE_MARGIN = 50
TITLE_Y = 750
HEADER_Y = 700
ROW_HEIGHT = 20
FONT_SIZE = 8


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def _cell(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _fit(text: str, width: float, font: str) -> str:
    if stringWidth(text, font, FONT_SIZE) <= width:
        return text
    while text and stringWidth(f"{text}...", font, FONT_SIZE) > width:
        text = text[:-1]
    return f"{text}..."


def render_csv(columns: tuple[str, ...], rows: list[dict[str, object]]) -> bytes:
    sio = io.StringIO()
    writer = csv.DictWriter(sio, fieldnames=list(columns), extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({column: _cell(row.get(column)) for column in columns})
    return sio.getvalue().encode("utf-8")


def render_xlsx(columns: tuple[str, ...], rows: list[dict[str, object]], sheet_title: str) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    sheet.append(list(columns))
    for row in rows:
        sheet.append([_cell(row.get(column)) for column in columns])

    output = BytesIO()
    workbook.save(output)
    return output.getvalue()


def render_pdf(columns: tuple[str, ...], rows: list[dict[str, object]], title: str) -> bytes:
    """Fixed-size pages; the header row repeats on every page."""

    output = BytesIO()
    pdf = canvas.Canvas(output, pagesize=PAGE_SIZE)
    column_width = (PAGE_SIZE[0] - 2 * PAGE_MARGIN) / len(columns)

    def draw_header(y: float) -> float:
        pdf.setFont("Helvetica-Bold", FONT_SIZE)
        for index, column in enumerate(columns):
            pdf.drawString(PAGE_MARGIN + index * column_width, y, _fit(column, column_width - 4, "Helvetica-Bold"))
        return y - ROW_HEIGHT

    pdf.setTitle(title)
    pdf.setFont("Helvetica-Bold", 18)
    pdf.drawString(PAGE_MARGIN, TITLE_Y, title)
    y = draw_header(HEADER_Y)

    for row in rows:
        if y <= PAGE_MARGIN:
            pdf.showPage()
            y = draw_header(TITLE_Y)
        pdf.setFont("Helvetica", FONT_SIZE)
        for index, column in enumerate(columns):
            text = _fit(str(_cell(row.get(column))), column_width - 4, "Helvetica")
            pdf.drawString(PAGE_MARGIN + index * column_width, y, text)
        y -= ROW_HEIGHT

    pdf.save()
    return output.getvalue()


class ExportService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = RecordsRepository(db)

    def export(self, data_type: str | None, format_name: str | None) -> ExportFilePayload:
        normalized_type = (data_type or "").strip().lower()
        normalized_format = (format_name or "csv").strip().lower()
        if normalized_type not in {"merchant", "transaction"}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Invalid data type. Must be "merchant" or "transaction".',
            )
        if normalized_format not in MEDIA_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="format must be one of: csv, xlsx, pdf.",
            )

        try:
            if normalized_type == "merchant":
                columns, rows = MERCHANT_COLUMNS, self.repo.list_merchant_rows()
            else:
                columns, rows = TRANSACTION_COLUMNS, self.repo.list_transaction_rows()
        except SQLAlchemyError:
            logger.exception("Export of %s records failed", normalized_type)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An error occurred during export.",
            ) from None

        if normalized_format == "csv":
            content = render_csv(columns, rows)
        elif normalized_format == "xlsx":
            content = render_xlsx(columns, rows, f"{normalized_type}s")
        else:
            content = render_pdf(columns, rows, f"{normalized_type.capitalize()} Report")

        logger.info("Exported %d %s rows as %s", len(rows), normalized_type, normalized_format)
        return ExportFilePayload(
            media_type=MEDIA_TYPES[normalized_format],
            filename=f"{normalized_type}s.{normalized_format}",
            content=content,
        )
