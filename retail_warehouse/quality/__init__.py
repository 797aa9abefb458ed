"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationCheck,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_cleansed_customers_validator,
    create_cleansed_products_validator,
    create_customer_dimension_validator,
    create_product_dimension_validator,
    create_sales_fact_validator,
)

__all__ = [
    "DataValidator",
    "ValidationCheck",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_cleansed_customers_validator",
    "create_cleansed_products_validator",
    "create_customer_dimension_validator",
    "create_product_dimension_validator",
    "create_sales_fact_validator",
]
