"""
Cleansing & Conformance Module

Turns raw source extracts into cleansed, conformed record sets.
Handles:
- Type coercion with per-field sanitization
- Deduplication of customer snapshots
- Code expansion to full text
- SCD Type 2 validity intervals for product versions
- Sales amount / price repair
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple, Union

import polars as pl
import structlog

from retail_warehouse.config import get_settings
from retail_warehouse.config.settings import ConformanceSettings
from retail_warehouse.models import (
    CLEANSED_COLUMNS,
    RAW_SCHEMAS,
    IssueType,
    RecordKind,
    conform_schema,
)

logger = structlog.get_logger(__name__)


# Code tables: label -> accepted source codes (matched trimmed, upper-cased)
MARITAL_STATUS_CODES: Dict[str, List[str]] = {"Single": ["S"], "Married": ["M"]}
GENDER_CODES: Dict[str, List[str]] = {"Female": ["F"], "Male": ["M"]}
GENDER_TEXT: Dict[str, List[str]] = {"Female": ["F", "FEMALE"], "Male": ["M", "MALE"]}
PRODUCT_LINE_CODES: Dict[str, List[str]] = {
    "Mountain": ["M"],
    "Road": ["R"],
    "Other Sales": ["S"],
    "Touring": ["T"],
}
COUNTRY_NAMES: Dict[str, List[str]] = {"Germany": ["DE"], "United States": ["US", "USA"]}

SALES_DATE_COLUMNS = ["sls_order_dt", "sls_ship_dt", "sls_due_dt"]
DATE_KEY_FORMAT = "%Y%m%d"


@dataclass
class CleaningStats:
    """Statistics from cleaning one record kind"""
    kind: RecordKind
    total_rows: int
    rows_after_cleaning: int = 0
    rows_rejected: int = 0
    duplicates_removed: int = 0
    nulls_filled: int = 0
    format_corrections: int = 0
    values_repaired: int = 0

    @property
    def issues(self) -> Dict[IssueType, int]:
        """Row-level issue counts in the shared error taxonomy"""
        return {
            IssueType.MALFORMED_FIELD: self.format_corrections,
            IssueType.MISSING_IDENTITY: self.rows_rejected,
        }


class ConformanceEngine:
    """
    Cleansing & conformance engine for the six source record kinds.

    Every transform is a pure function of its input frame, so kinds can be
    cleaned independently and in any order.

    Example:
        engine = ConformanceEngine(reference_date=date(2024, 1, 1))
        customers, stats = engine.clean(raw_customers, RecordKind.CUSTOMERS)
    """

    def __init__(
        self,
        reference_date: Optional[date] = None,
        conformance: Optional[ConformanceSettings] = None,
    ):
        settings = get_settings()
        self.conformance = conformance or settings.conformance
        self._reference_date = reference_date or settings.pipeline.reference_date
        self._handlers: Dict[RecordKind, Callable[[pl.DataFrame, CleaningStats], pl.DataFrame]] = {
            RecordKind.CUSTOMERS: self._clean_customers,
            RecordKind.PRODUCTS: self._clean_products,
            RecordKind.SALES: self._clean_sales,
            RecordKind.LOCATIONS: self._clean_locations,
            RecordKind.DEMOGRAPHICS: self._clean_demographics,
            RecordKind.CATEGORIES: self._clean_categories,
        }

    @property
    def reference_date(self) -> date:
        """Cut-off for birthdates; without an explicit date this is today, read per call"""
        return self._reference_date or date.today()

    def _decode(self, column: str, codes: Dict[str, List[str]]) -> pl.Expr:
        """Expand source codes to labels; anything unmapped becomes n/a"""
        code = pl.col(column).str.strip_chars().str.to_uppercase()
        expr = None
        for label, accepted in codes.items():
            condition = code.is_in(accepted)
            if expr is None:
                expr = pl.when(condition).then(pl.lit(label))
            else:
                expr = expr.when(condition).then(pl.lit(label))
        return expr.otherwise(pl.lit(self.conformance.not_available)).alias(column)

    @staticmethod
    def _count_coercion_nulls(raw: pl.DataFrame, conformed: pl.DataFrame) -> int:
        """Count values that failed type coercion"""
        columns = [c for c in raw.columns if c in conformed.columns]
        return sum(conformed[c].null_count() - raw[c].null_count() for c in columns)

    def clean(
        self,
        df: pl.DataFrame,
        kind: Union[RecordKind, str],
    ) -> Tuple[pl.DataFrame, CleaningStats]:
        """
        Cleanse one raw collection.

        Args:
            df: Raw records of a single kind
            kind: Record kind of the collection

        Returns:
            Tuple of cleansed DataFrame and cleaning statistics
        """
        kind = RecordKind(kind)
        handler = self._handlers[kind]
        stats = CleaningStats(kind=kind, total_rows=df.height)

        conformed = conform_schema(df, kind)
        stats.format_corrections += self._count_coercion_nulls(
            df.select([c for c in df.columns if c in RAW_SCHEMAS[kind]]), conformed
        )

        cleaned = handler(conformed, stats).select(CLEANSED_COLUMNS[kind])
        stats.rows_after_cleaning = cleaned.height

        logger.info(
            f"Cleansed {kind.value}: {stats.total_rows} -> {stats.rows_after_cleaning} rows",
            rejected=stats.rows_rejected,
            duplicates_removed=stats.duplicates_removed,
            format_corrections=stats.format_corrections,
            values_repaired=stats.values_repaired,
        )

        return cleaned, stats

    def clean_customers(self, df: pl.DataFrame) -> pl.DataFrame:
        """Deduplicate customers and expand marital status / gender codes"""
        return self.clean(df, RecordKind.CUSTOMERS)[0]

    def clean_products(self, df: pl.DataFrame) -> pl.DataFrame:
        """Split product keys, expand line codes and derive SCD2 end dates"""
        return self.clean(df, RecordKind.PRODUCTS)[0]

    def clean_sales(self, df: pl.DataFrame) -> pl.DataFrame:
        """Parse integer dates and repair sales amount / price"""
        return self.clean(df, RecordKind.SALES)[0]

    def clean_locations(self, df: pl.DataFrame) -> pl.DataFrame:
        """Normalize location customer ids and country names"""
        return self.clean(df, RecordKind.LOCATIONS)[0]

    def clean_demographics(self, df: pl.DataFrame) -> pl.DataFrame:
        """Strip id prefixes, drop future birthdates, normalize gender"""
        return self.clean(df, RecordKind.DEMOGRAPHICS)[0]

    def clean_categories(self, df: pl.DataFrame) -> pl.DataFrame:
        """Pass category lookups through unchanged"""
        return self.clean(df, RecordKind.CATEGORIES)[0]

    def _clean_customers(self, df: pl.DataFrame, stats: CleaningStats) -> pl.DataFrame:
        identified = df.filter(pl.col("cst_id").is_not_null())
        stats.rows_rejected = df.height - identified.height

        # Latest creation date wins; ties go to the earliest input row
        latest = (
            identified.with_row_index("_row")
            .sort(
                ["cst_id", "cst_create_date", "_row"],
                descending=[False, True, False],
                nulls_last=True,
            )
            .unique(subset=["cst_id"], keep="first", maintain_order=True)
            .drop("_row")
        )
        stats.duplicates_removed = identified.height - latest.height

        return latest.with_columns([
            pl.col("cst_firstname").str.strip_chars(),
            pl.col("cst_lastname").str.strip_chars(),
            self._decode("cst_marital_status", MARITAL_STATUS_CODES),
            self._decode("cst_gndr", GENDER_CODES),
        ])

    def _clean_products(self, df: pl.DataFrame, stats: CleaningStats) -> pl.DataFrame:
        width = self.conformance.category_prefix_width
        separator = self.conformance.product_key_separator

        keyed = df.filter(pl.col("prd_key").is_not_null())
        stats.rows_rejected = df.height - keyed.height
        stats.nulls_filled = keyed["prd_cost"].null_count()

        keyed = keyed.with_columns([
            pl.col("prd_key")
            .str.slice(0, width)
            .str.replace_all(separator, self.conformance.category_id_separator, literal=True)
            .alias("cat_id"),
            pl.col("prd_key").str.slice(width + len(separator)).alias("prd_key"),
            pl.col("prd_cost").fill_null(0),
            self._decode("prd_line", PRODUCT_LINE_CODES),
        ])

        # SCD Type 2: each version expires the day before its successor starts
        return (
            keyed.with_row_index("_row")
            .sort(["prd_key", "prd_start_dt", "_row"])
            .with_columns(
                pl.col("prd_start_dt")
                .shift(-1)
                .over("prd_key")
                .dt.offset_by("-1d")
                .alias("prd_end_dt")
            )
            .drop("_row")
        )

    @staticmethod
    def _parse_date_key(column: str) -> pl.Expr:
        """YYYYMMDD integer to date; 0, wrong length or bad calendar values are null"""
        eight_digits = pl.col(column).is_between(10_000_000, 99_999_999)
        return (
            pl.when(eight_digits)
            .then(pl.col(column).cast(pl.Utf8).str.to_date(DATE_KEY_FORMAT, strict=False))
            .otherwise(pl.lit(None, dtype=pl.Date))
            .alias(column)
        )

    def _clean_sales(self, df: pl.DataFrame, stats: CleaningStats) -> pl.DataFrame:
        parsed = df.with_columns([self._parse_date_key(c) for c in SALES_DATE_COLUMNS])
        stats.format_corrections += sum(
            parsed[c].null_count() - df[c].null_count() for c in SALES_DATE_COLUMNS
        )

        quantity = pl.col("sls_quantity")
        price = pl.col("sls_price")
        sales = pl.col("sls_sales")

        # Amount first, against the original price
        expected = quantity * price.abs()
        amount_invalid = sales.is_null() | (sales <= 0) | (sales != expected)
        repaired = parsed.with_columns([
            pl.when(amount_invalid).then(expected).otherwise(sales).alias("sls_sales"),
            amount_invalid.fill_null(False).alias("_amount_repaired"),
        ])

        # Then price, from the possibly corrected amount
        price_invalid = price.is_null() | (price <= 0)
        repaired = repaired.with_columns([
            pl.when(price_invalid)
            .then(pl.when(quantity != 0).then(sales / quantity))
            .otherwise(price)
            .alias("sls_price"),
            price_invalid.fill_null(False).alias("_price_repaired"),
        ])

        stats.values_repaired = int(
            repaired["_amount_repaired"].sum() + repaired["_price_repaired"].sum()
        )
        return repaired.drop(["_amount_repaired", "_price_repaired"])

    def _clean_locations(self, df: pl.DataFrame, stats: CleaningStats) -> pl.DataFrame:
        country = pl.col("cntry").str.strip_chars()
        code = country.str.to_uppercase()

        expr = None
        for name, codes in COUNTRY_NAMES.items():
            condition = code.is_in(codes)
            expr = pl.when(condition).then(pl.lit(name)) if expr is None else expr.when(condition).then(pl.lit(name))
        expr = (
            expr.when(country.is_null() | (country == ""))
            .then(pl.lit(self.conformance.not_available))
            .otherwise(country)
        )

        stats.nulls_filled = df.filter(country.is_null() | (country == "")).height

        return df.with_columns([
            pl.col("cid").str.replace_all(self.conformance.location_id_separator, "", literal=True),
            expr.alias("cntry"),
        ])

    def _clean_demographics(self, df: pl.DataFrame, stats: CleaningStats) -> pl.DataFrame:
        prefix = self.conformance.demographic_id_prefix
        future = pl.col("bdate") > pl.lit(self.reference_date)

        stats.format_corrections += df.filter(future).height

        return df.with_columns([
            pl.when(pl.col("cid").str.starts_with(prefix))
            .then(pl.col("cid").str.slice(len(prefix)))
            .otherwise(pl.col("cid"))
            .alias("cid"),
            pl.when(future)
            .then(pl.lit(None, dtype=pl.Date))
            .otherwise(pl.col("bdate"))
            .alias("bdate"),
            self._decode("gen", GENDER_TEXT),
        ])

    def _clean_categories(self, df: pl.DataFrame, stats: CleaningStats) -> pl.DataFrame:
        return df


def clean_dataframe(
    df: pl.DataFrame,
    kind: Union[RecordKind, str],
    reference_date: Optional[date] = None,
) -> pl.DataFrame:
    """
    Convenience function to cleanse a single raw collection.

    Args:
        df: Raw records
        kind: "customers", "products", "sales", "locations",
            "demographics" or "categories"
        reference_date: Date used to reject future birthdates

    Returns:
        Cleansed DataFrame
    """
    engine = ConformanceEngine(reference_date=reference_date)
    cleaned, _ = engine.clean(df, kind)
    return cleaned
