"""Request-scoped database session."""

from collections.abc import Generator

from sqlalchemy.orm import Session

from loyalty_dashboard.db.session import SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """Yield one session per request; uncommitted work is discarded on error."""

    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
