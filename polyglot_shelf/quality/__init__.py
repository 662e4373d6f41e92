"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_users_validator,
    create_products_validator,
    create_edges_validator,
)

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_users_validator",
    "create_products_validator",
    "create_edges_validator",
]
