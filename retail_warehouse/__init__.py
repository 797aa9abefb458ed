"""
Retail Warehouse

Cleansing, conformance and star-schema build for CRM and ERP extracts.
"""
from .models import RecordKind, MissingCollectionError
from .transformation import ConformanceEngine, DimensionalBuilder, WarehouseTransformer

__version__ = "1.0.0"

__all__ = [
    "RecordKind",
    "MissingCollectionError",
    "ConformanceEngine",
    "DimensionalBuilder",
    "WarehouseTransformer",
]
