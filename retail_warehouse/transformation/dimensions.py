"""
Dimensional Builder Module

Reshapes cleansed record sets into a star schema:
- Customer dimension (CRM customer + ERP demographics + ERP location)
- Product dimension (active product versions + category lookup)
- Sales fact (sales lines resolved against both dimensions)
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import polars as pl
import structlog

from retail_warehouse.config import get_settings
from retail_warehouse.config.settings import ConformanceSettings
from retail_warehouse.models import (
    DIM_CUSTOMERS,
    DIM_PRODUCTS,
    DIMENSIONAL_COLUMNS,
    FACT_SALES,
    IssueType,
    MissingCollectionError,
    RecordKind,
)

logger = structlog.get_logger(__name__)


@dataclass
class BuildStats:
    """Statistics from building one star-schema projection"""
    name: str
    input_rows: int
    output_rows: int
    unresolved_products: int = 0
    unresolved_customers: int = 0

    @property
    def issues(self) -> Dict[IssueType, int]:
        """Row-level issue counts in the shared error taxonomy"""
        return {
            IssueType.UNRESOLVED_REFERENCE: self.unresolved_products + self.unresolved_customers,
        }


class DimensionalBuilder:
    """
    Builds dimension and fact projections from cleansed records.

    Joins are left-outer from the primary source; secondary sources are
    reduced to keyed lookup frames first, so a join never multiplies
    primary rows. No deduplication of the primary records happens here.

    Example:
        builder = DimensionalBuilder()
        tables, stats = builder.build(cleansed)
        tables["fact_sales"]
    """

    def __init__(self, conformance: Optional[ConformanceSettings] = None):
        self.conformance = conformance or get_settings().conformance

    @staticmethod
    def _lookup(df: pl.DataFrame, key: str, columns: Dict[str, str]) -> pl.DataFrame:
        """Reduce a secondary source to one row per key (first occurrence wins)"""
        return (
            df.filter(pl.col(key).is_not_null())
            .unique(subset=[key], keep="first", maintain_order=True)
            .select([pl.col(source).alias(target) for source, target in columns.items()])
        )

    def build_customer_dimension(
        self,
        customers: pl.DataFrame,
        demographics: pl.DataFrame,
        locations: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Build the customer dimension.

        CRM gender takes precedence; the ERP gender only fills in where the
        CRM value is n/a.
        """
        not_available = self.conformance.not_available

        demographic_lookup = self._lookup(
            demographics, "cid", {"cid": "cst_key", "bdate": "birthdate", "gen": "_erp_gender"}
        )
        location_lookup = self._lookup(locations, "cid", {"cid": "cst_key", "cntry": "country"})

        joined = (
            customers.join(demographic_lookup, on="cst_key", how="left")
            .join(location_lookup, on="cst_key", how="left")
        )

        gender = (
            pl.when(pl.col("cst_gndr") != not_available)
            .then(pl.col("cst_gndr"))
            .otherwise(pl.col("_erp_gender").fill_null(not_available))
        )

        return (
            joined.sort("cst_id", maintain_order=True)
            .with_row_index("customer_key", offset=1)
            .select([
                pl.col("customer_key").cast(pl.Int64),
                pl.col("cst_id").alias("customer_id"),
                pl.col("cst_key").alias("customer_number"),
                pl.col("cst_firstname").alias("first_name"),
                pl.col("cst_lastname").alias("last_name"),
                pl.col("country"),
                pl.col("cst_marital_status").alias("marital_status"),
                gender.alias("gender"),
                pl.col("birthdate"),
                pl.col("cst_create_date").alias("create_date"),
            ])
        )

    def build_product_dimension(
        self,
        products: pl.DataFrame,
        categories: pl.DataFrame,
    ) -> pl.DataFrame:
        """Build the product dimension from currently active versions only"""
        category_lookup = self._lookup(
            categories,
            "id",
            {"id": "cat_id", "cat": "category", "subcat": "subcategory", "maintenance": "maintenance"},
        )

        active = products.filter(pl.col("prd_end_dt").is_null())

        return (
            active.join(category_lookup, on="cat_id", how="left")
            .sort(["prd_start_dt", "prd_key", "prd_id"], maintain_order=True)
            .with_row_index("product_key", offset=1)
            .select([
                pl.col("product_key").cast(pl.Int64),
                pl.col("prd_id").alias("product_id"),
                pl.col("prd_key").alias("product_number"),
                pl.col("prd_nm").alias("product_name"),
                pl.col("cat_id").alias("category_id"),
                pl.col("category"),
                pl.col("subcategory"),
                pl.col("maintenance"),
                pl.col("prd_cost").alias("cost"),
                pl.col("prd_line").alias("product_line"),
                pl.col("prd_start_dt").alias("start_date"),
            ])
        )

    def build_sales_fact(
        self,
        sales: pl.DataFrame,
        product_dimension: pl.DataFrame,
        customer_dimension: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Build the sales fact.

        Lines whose product or customer does not resolve keep a null
        surrogate key; no line is dropped.
        """
        product_lookup = self._lookup(
            product_dimension, "product_number", {"product_number": "sls_prd_key", "product_key": "product_key"}
        )
        customer_lookup = self._lookup(
            customer_dimension, "customer_id", {"customer_id": "sls_cust_id", "customer_key": "customer_key"}
        )

        return (
            sales.with_row_index("_row")
            .join(product_lookup, on="sls_prd_key", how="left")
            .join(customer_lookup, on="sls_cust_id", how="left")
            .sort("_row")
            .select([
                pl.col("sls_ord_num").alias("order_number"),
                pl.col("product_key"),
                pl.col("customer_key"),
                pl.col("sls_order_dt").alias("order_date"),
                pl.col("sls_ship_dt").alias("shipping_date"),
                pl.col("sls_due_dt").alias("due_date"),
                pl.col("sls_sales").alias("sales_amount"),
                pl.col("sls_quantity").alias("quantity"),
                pl.col("sls_price").alias("price"),
            ])
        )

    def build(
        self,
        cleansed: Mapping[RecordKind, pl.DataFrame],
    ) -> Tuple[Dict[str, pl.DataFrame], Dict[str, BuildStats]]:
        """
        Build all three projections from a complete cleansed snapshot.

        Args:
            cleansed: Cleansed frames keyed by record kind

        Returns:
            Tuple of projections and build statistics, both keyed by table name

        Raises:
            MissingCollectionError: If a cleansed collection is absent
        """
        for kind in RecordKind:
            if cleansed.get(kind) is None:
                raise MissingCollectionError(kind)

        customers = cleansed[RecordKind.CUSTOMERS]
        products = cleansed[RecordKind.PRODUCTS]
        sales = cleansed[RecordKind.SALES]

        customer_dim = self.build_customer_dimension(
            customers, cleansed[RecordKind.DEMOGRAPHICS], cleansed[RecordKind.LOCATIONS]
        )
        product_dim = self.build_product_dimension(products, cleansed[RecordKind.CATEGORIES])
        fact = self.build_sales_fact(sales, product_dim, customer_dim)

        tables = {
            DIM_CUSTOMERS: customer_dim.select(DIMENSIONAL_COLUMNS[DIM_CUSTOMERS]),
            DIM_PRODUCTS: product_dim.select(DIMENSIONAL_COLUMNS[DIM_PRODUCTS]),
            FACT_SALES: fact.select(DIMENSIONAL_COLUMNS[FACT_SALES]),
        }

        stats = {
            DIM_CUSTOMERS: BuildStats(DIM_CUSTOMERS, customers.height, customer_dim.height),
            DIM_PRODUCTS: BuildStats(DIM_PRODUCTS, products.height, product_dim.height),
            FACT_SALES: BuildStats(
                FACT_SALES,
                sales.height,
                fact.height,
                unresolved_products=fact["product_key"].null_count(),
                unresolved_customers=fact["customer_key"].null_count(),
            ),
        }

        fact_stats = stats[FACT_SALES]
        if fact_stats.unresolved_products or fact_stats.unresolved_customers:
            logger.warning(
                "Sales fact has unresolved references",
                unresolved_products=fact_stats.unresolved_products,
                unresolved_customers=fact_stats.unresolved_customers,
                total_rows=fact_stats.output_rows,
            )

        logger.info(
            "Dimensional build complete",
            customers=customer_dim.height,
            products=product_dim.height,
            sales=fact.height,
        )

        return tables, stats
