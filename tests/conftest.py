"""
Test Suite Configuration
"""
from datetime import date
from typing import Dict

import pytest
import polars as pl

from retail_warehouse.config import Settings
from retail_warehouse.models import RecordKind


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def reference_date() -> date:
    """Fixed 'today' so birthdate validation is reproducible"""
    return date(2025, 6, 30)


@pytest.fixture
def raw_customers_df() -> pl.DataFrame:
    """CRM customers: one duplicate id, one row without id"""
    return pl.DataFrame({
        "cst_id": [1, 1, 2, None, 3],
        "cst_key": ["AW00011000", "AW00011000", "AW00011001", "AW00011099", "AW00011002"],
        "cst_firstname": ["  Jon ", "Jon", "Elizabeth ", "Ghost", "Ruben"],
        "cst_lastname": ["Yang", " Yang ", "Zheng", "Nobody", "Torres"],
        "cst_marital_status": ["S", " m ", "m", "S", None],
        "cst_gndr": ["M", "m", " f", "F", "x"],
        "cst_create_date": [
            date(2025, 1, 1),
            date(2025, 3, 1),
            date(2025, 2, 1),
            date(2025, 1, 1),
            date(2025, 1, 5),
        ],
    }, schema_overrides={"cst_id": pl.Int64})


@pytest.fixture
def raw_products_df() -> pl.DataFrame:
    """CRM products: three versions of one bike, one frame, one row without key"""
    return pl.DataFrame({
        "prd_id": [313, 314, 315, 210, 999],
        "prd_key": [
            "BI-RB-BK-R93R-62",
            "BI-RB-BK-R93R-62",
            "BI-RB-BK-R93R-62",
            "CO-RF-FR-R92B-58",
            None,
        ],
        "prd_nm": [
            "Road-150 Red- 62",
            "Road-150 Red- 62",
            "Road-150 Red- 62",
            "HL Road Frame - Black- 58",
            "Orphan",
        ],
        "prd_cost": [2171, 2200, None, None, 5],
        "prd_line": ["R ", "r", "R", "M", "Z"],
        "prd_start_dt": [
            date(2013, 7, 1),
            date(2011, 7, 1),
            date(2012, 7, 1),
            date(2003, 7, 1),
            date(2003, 7, 1),
        ],
        "prd_end_dt": [None, None, None, None, None],
    }, schema_overrides={"prd_cost": pl.Int64, "prd_end_dt": pl.Date})


@pytest.fixture
def raw_sales_df() -> pl.DataFrame:
    """CRM sales lines with broken dates, amounts and prices"""
    return pl.DataFrame({
        "sls_ord_num": ["SO43697", "SO43698", "SO43699", "SO43700"],
        "sls_prd_key": ["BK-R93R-62", "FR-R92B-58", "ZZ-UNKNOWN", "BK-R93R-62"],
        "sls_cust_id": [1, 2, 3, 42],
        "sls_order_dt": [20130115, 0, 2013011, 201301150],
        "sls_ship_dt": [20130122, 20130122, 20130122, 20130122],
        "sls_due_dt": [20130127, 20130127, 20130127, 20130127],
        "sls_sales": [999.0, 100.0, None, -5.0],
        "sls_quantity": [3, 5, 1, 2],
        "sls_price": [10.0, None, 50.0, -20.0],
    })


@pytest.fixture
def raw_locations_df() -> pl.DataFrame:
    """ERP locations with hyphenated ids and mixed country spellings"""
    return pl.DataFrame({
        "cid": ["AW-00011000", "AW-00011001", "AW-00011002", "AW-00011003"],
        "cntry": ["DE", " USA ", "  ", "Australia"],
    })


@pytest.fixture
def raw_demographics_df() -> pl.DataFrame:
    """ERP demographics with NAS-prefixed ids and a future birthdate"""
    return pl.DataFrame({
        "cid": ["NASAW00011000", "NASAW00011001", "AW00011002"],
        "bdate": [date(1971, 10, 6), date(2099, 1, 1), date(1976, 5, 10)],
        "gen": ["Female", "F", " FEMALE "],
    })


@pytest.fixture
def raw_categories_df() -> pl.DataFrame:
    """ERP category lookup"""
    return pl.DataFrame({
        "id": ["BI_RB", "CO_RF"],
        "cat": ["Bikes", "Components"],
        "subcat": ["Road Bikes", "Road Frames"],
        "maintenance": ["Yes", "No"],
    })


@pytest.fixture
def raw_snapshot(
    raw_customers_df,
    raw_products_df,
    raw_sales_df,
    raw_locations_df,
    raw_demographics_df,
    raw_categories_df,
) -> Dict[RecordKind, pl.DataFrame]:
    """Complete raw snapshot keyed by record kind"""
    return {
        RecordKind.CUSTOMERS: raw_customers_df,
        RecordKind.PRODUCTS: raw_products_df,
        RecordKind.SALES: raw_sales_df,
        RecordKind.LOCATIONS: raw_locations_df,
        RecordKind.DEMOGRAPHICS: raw_demographics_df,
        RecordKind.CATEGORIES: raw_categories_df,
    }
