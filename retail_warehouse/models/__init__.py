"""
Record Models Module
"""
from .records import (
    RecordKind,
    IssueType,
    MissingCollectionError,
    RAW_SCHEMAS,
    CLEANSED_COLUMNS,
    DIMENSIONAL_COLUMNS,
    SOURCE_TABLES,
    DIM_CUSTOMERS,
    DIM_PRODUCTS,
    FACT_SALES,
    conform_schema,
    validate_snapshot,
)

__all__ = [
    "RecordKind",
    "IssueType",
    "MissingCollectionError",
    "RAW_SCHEMAS",
    "CLEANSED_COLUMNS",
    "DIMENSIONAL_COLUMNS",
    "SOURCE_TABLES",
    "DIM_CUSTOMERS",
    "DIM_PRODUCTS",
    "FACT_SALES",
    "conform_schema",
    "validate_snapshot",
]
