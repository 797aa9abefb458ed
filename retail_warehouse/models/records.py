"""
Record Schemas

Column layouts of the six source record kinds and of the star-schema
projections built from them. Records travel as polars DataFrames; these
schemas are the contract between the ingestion collaborator, the
cleansing engine and the dimensional builder.
"""

from enum import Enum
from typing import Dict, List, Mapping

import polars as pl


class RecordKind(str, Enum):
    """Source record kinds handled by the pipeline"""
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    SALES = "sales"
    LOCATIONS = "locations"
    DEMOGRAPHICS = "demographics"
    CATEGORIES = "categories"


class IssueType(str, Enum):
    """Row-level problems detected and handled inside a stage"""
    MALFORMED_FIELD = "malformed_field"  # value sanitized, row kept
    UNRESOLVED_REFERENCE = "unresolved_reference"  # surrogate key null, row kept
    MISSING_IDENTITY = "missing_identity"  # row dropped


class MissingCollectionError(ValueError):
    """A raw collection, or a column it must carry, is absent from the snapshot"""

    def __init__(self, kind: "RecordKind", missing_columns: List[str] = None):
        self.kind = kind
        self.missing_columns = missing_columns or []
        if self.missing_columns:
            message = f"Raw collection '{kind.value}' is missing columns: {self.missing_columns}"
        else:
            message = f"Raw collection '{kind.value}' is missing from the snapshot"
        super().__init__(message)


# Source table names, used when persisting cleansed outputs
SOURCE_TABLES: Dict[RecordKind, str] = {
    RecordKind.CUSTOMERS: "crm_cust_info",
    RecordKind.PRODUCTS: "crm_prd_info",
    RecordKind.SALES: "crm_sales_details",
    RecordKind.LOCATIONS: "erp_loc_a101",
    RecordKind.DEMOGRAPHICS: "erp_cust_az12",
    RecordKind.CATEGORIES: "erp_px_cat_g1v2",
}

RAW_SCHEMAS: Dict[RecordKind, Dict[str, pl.DataType]] = {
    RecordKind.CUSTOMERS: {
        "cst_id": pl.Int64,
        "cst_key": pl.Utf8,
        "cst_firstname": pl.Utf8,
        "cst_lastname": pl.Utf8,
        "cst_marital_status": pl.Utf8,
        "cst_gndr": pl.Utf8,
        "cst_create_date": pl.Date,
    },
    RecordKind.PRODUCTS: {
        "prd_id": pl.Int64,
        "prd_key": pl.Utf8,
        "prd_nm": pl.Utf8,
        "prd_cost": pl.Int64,
        "prd_line": pl.Utf8,
        "prd_start_dt": pl.Date,
        "prd_end_dt": pl.Date,
    },
    RecordKind.SALES: {
        "sls_ord_num": pl.Utf8,
        "sls_prd_key": pl.Utf8,
        "sls_cust_id": pl.Int64,
        "sls_order_dt": pl.Int64,
        "sls_ship_dt": pl.Int64,
        "sls_due_dt": pl.Int64,
        "sls_sales": pl.Float64,
        "sls_quantity": pl.Int64,
        "sls_price": pl.Float64,
    },
    RecordKind.LOCATIONS: {
        "cid": pl.Utf8,
        "cntry": pl.Utf8,
    },
    RecordKind.DEMOGRAPHICS: {
        "cid": pl.Utf8,
        "bdate": pl.Date,
        "gen": pl.Utf8,
    },
    RecordKind.CATEGORIES: {
        "id": pl.Utf8,
        "cat": pl.Utf8,
        "subcat": pl.Utf8,
        "maintenance": pl.Utf8,
    },
}

# prd_end_dt is recomputed from the version history, so the source may omit it
OPTIONAL_RAW_COLUMNS: Dict[RecordKind, List[str]] = {
    RecordKind.PRODUCTS: ["prd_end_dt"],
}

CLEANSED_COLUMNS: Dict[RecordKind, List[str]] = {
    RecordKind.CUSTOMERS: list(RAW_SCHEMAS[RecordKind.CUSTOMERS]),
    RecordKind.PRODUCTS: [
        "prd_id", "cat_id", "prd_key", "prd_nm", "prd_cost",
        "prd_line", "prd_start_dt", "prd_end_dt",
    ],
    RecordKind.SALES: list(RAW_SCHEMAS[RecordKind.SALES]),
    RecordKind.LOCATIONS: list(RAW_SCHEMAS[RecordKind.LOCATIONS]),
    RecordKind.DEMOGRAPHICS: list(RAW_SCHEMAS[RecordKind.DEMOGRAPHICS]),
    RecordKind.CATEGORIES: list(RAW_SCHEMAS[RecordKind.CATEGORIES]),
}

# Star schema projections
DIM_CUSTOMERS = "dim_customers"
DIM_PRODUCTS = "dim_products"
FACT_SALES = "fact_sales"

DIMENSIONAL_COLUMNS: Dict[str, List[str]] = {
    DIM_CUSTOMERS: [
        "customer_key", "customer_id", "customer_number", "first_name",
        "last_name", "country", "marital_status", "gender", "birthdate",
        "create_date",
    ],
    DIM_PRODUCTS: [
        "product_key", "product_id", "product_number", "product_name",
        "category_id", "category", "subcategory", "maintenance", "cost",
        "product_line", "start_date",
    ],
    FACT_SALES: [
        "order_number", "product_key", "customer_key", "order_date",
        "shipping_date", "due_date", "sales_amount", "quantity", "price",
    ],
}


# Text layouts accepted for date columns; DATETIME extracts are truncated to the day
DATE_TEXT_FORMATS = ["%Y-%m-%d"]
DATETIME_TEXT_FORMATS = ["%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S%.f"]


def _text_to_date(col: pl.Expr) -> pl.Expr:
    text = col.str.strip_chars()
    candidates = [text.str.to_date(fmt, strict=False) for fmt in DATE_TEXT_FORMATS]
    candidates += [text.str.to_datetime(fmt, strict=False).dt.date() for fmt in DATETIME_TEXT_FORMATS]
    return pl.coalesce(candidates)


def _coerce_expr(name: str, current: pl.DataType, target: pl.DataType) -> pl.Expr:
    """Build a non-strict cast; unparseable values become null"""
    col = pl.col(name)
    if current == target:
        return col
    if target == pl.Date:
        if current == pl.Utf8:
            return _text_to_date(col).alias(name)
        if current == pl.Datetime:
            return col.dt.date().alias(name)
    return col.cast(target, strict=False).alias(name)


def conform_schema(df: pl.DataFrame, kind: RecordKind) -> pl.DataFrame:
    """
    Coerce a raw collection to its declared column types.

    Missing optional columns are added as nulls and extra columns are
    dropped. A missing required column is structural and raises.

    Raises:
        MissingCollectionError: If a required column is absent
    """
    schema = RAW_SCHEMAS[kind]
    optional = OPTIONAL_RAW_COLUMNS.get(kind, [])

    missing = [c for c in schema if c not in df.columns and c not in optional]
    if missing:
        raise MissingCollectionError(kind, missing)

    exprs = []
    for name, dtype in schema.items():
        if name in df.columns:
            exprs.append(_coerce_expr(name, df.schema[name], dtype))
        else:
            exprs.append(pl.lit(None, dtype=dtype).alias(name))

    return df.select(exprs)


def validate_snapshot(raw: Mapping[RecordKind, pl.DataFrame]) -> None:
    """
    Check that a raw snapshot carries every collection the pipeline needs.

    Raises:
        MissingCollectionError: On the first absent collection or column
    """
    for kind in RecordKind:
        df = raw.get(kind)
        if df is None:
            raise MissingCollectionError(kind)
        optional = OPTIONAL_RAW_COLUMNS.get(kind, [])
        missing = [c for c in RAW_SCHEMAS[kind] if c not in df.columns and c not in optional]
        if missing:
            raise MissingCollectionError(kind, missing)
