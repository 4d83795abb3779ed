"""ORM model package."""

from loyalty_dashboard.models.entities import (
    DimCategory,
    DimCluster,
    DimMerchant,
    DimRule,
    FactClusterPoint,
    FactTransaction,
    TransactionStatus,
)

__all__ = [
    "DimCategory",
    "DimCluster",
    "DimMerchant",
    "DimRule",
    "FactClusterPoint",
    "FactTransaction",
    "TransactionStatus",
]
