"""
Unit Tests - Pipeline Orchestration
"""
from pathlib import Path

import pytest
import polars as pl
from polars.testing import assert_frame_equal

from retail_warehouse.models import (
    DIM_CUSTOMERS,
    DIM_PRODUCTS,
    FACT_SALES,
    SOURCE_TABLES,
    IssueType,
    MissingCollectionError,
    RecordKind,
)
from retail_warehouse.quality.validators import ValidationStatus
from retail_warehouse.transformation.transformers import PipelineStage, WarehouseTransformer


@pytest.fixture
def transformer(reference_date) -> WarehouseTransformer:
    return WarehouseTransformer(
        reference_date=reference_date,
        parallel=False,
        enable_validation=True,
        persist_outputs=False,
    )


class TestRunCleansing:
    """Tests for the cleansing stage"""

    def test_all_kinds_cleansed(self, transformer, raw_snapshot):
        output = transformer.run_cleansing(raw_snapshot)

        assert output.stage == PipelineStage.CLEANSING
        assert set(output.tables) == set(RecordKind)
        assert set(output.results) == set(SOURCE_TABLES.values())

    def test_string_keys_accepted(self, transformer, raw_snapshot):
        output = transformer.run_cleansing({kind.value: df for kind, df in raw_snapshot.items()})

        assert output.tables[RecordKind.CUSTOMERS].height == 3

    def test_dropped_rows_reported(self, transformer, raw_snapshot):
        output = transformer.run_cleansing(raw_snapshot)
        customers = output.results["crm_cust_info"]

        assert customers.input_rows == 5
        assert customers.output_rows == 3
        assert customers.rows_dropped == 2
        assert customers.issues[IssueType.MISSING_IDENTITY] == 1

    def test_missing_collection_aborts_run(self, transformer, raw_snapshot):
        del raw_snapshot[RecordKind.LOCATIONS]

        with pytest.raises(MissingCollectionError) as exc_info:
            transformer.run_cleansing(raw_snapshot)

        assert exc_info.value.kind == RecordKind.LOCATIONS

    def test_missing_column_aborts_run(self, transformer, raw_snapshot):
        raw_snapshot[RecordKind.SALES] = raw_snapshot[RecordKind.SALES].drop("sls_quantity")

        with pytest.raises(MissingCollectionError):
            transformer.run_cleansing(raw_snapshot)

    def test_unknown_kind_rejected(self, transformer, raw_snapshot):
        snapshot = dict(raw_snapshot)
        snapshot["orders"] = pl.DataFrame({"id": [1]})

        with pytest.raises(ValueError):
            transformer.run_cleansing(snapshot)

    def test_parallel_matches_serial(self, reference_date, raw_snapshot):
        serial = WarehouseTransformer(reference_date=reference_date, parallel=False, enable_validation=False)
        parallel = WarehouseTransformer(reference_date=reference_date, parallel=True, enable_validation=False)

        serial_out = serial.run_cleansing(raw_snapshot)
        parallel_out = parallel.run_cleansing(raw_snapshot)

        for kind in RecordKind:
            assert_frame_equal(serial_out.tables[kind], parallel_out.tables[kind])

    def test_cleansed_validations_pass(self, transformer, raw_snapshot):
        output = transformer.run_cleansing(raw_snapshot)

        assert output.validations["crm_cust_info"].status == ValidationStatus.PASSED
        assert output.validations["crm_prd_info"].status == ValidationStatus.PASSED


class TestRunFullEtl:
    """Tests for the full pipeline"""

    def test_star_schema_built(self, transformer, raw_snapshot):
        result = transformer.run_full_etl(raw_snapshot)
        tables = result.dimensional.tables

        assert tables[DIM_CUSTOMERS].height == 3
        assert tables[DIM_PRODUCTS].height == 2
        assert tables[FACT_SALES].height == 4

    def test_issue_totals(self, transformer, raw_snapshot):
        result = transformer.run_full_etl(raw_snapshot)
        totals = result.issue_totals

        assert totals[IssueType.MISSING_IDENTITY] == 2
        assert totals[IssueType.UNRESOLVED_REFERENCE] == 2
        # three bad order dates and one future birthdate
        assert totals[IssueType.MALFORMED_FIELD] == 4

    def test_idempotent(self, transformer, raw_snapshot):
        first = transformer.run_full_etl(raw_snapshot)
        second = transformer.run_full_etl(raw_snapshot)

        for kind in RecordKind:
            assert_frame_equal(first.cleansed.tables[kind], second.cleansed.tables[kind])
        for name in (DIM_CUSTOMERS, DIM_PRODUCTS, FACT_SALES):
            assert_frame_equal(first.dimensional.tables[name], second.dimensional.tables[name])

    def test_unresolved_fact_rows_flagged_as_warnings(self, transformer, raw_snapshot):
        result = transformer.run_full_etl(raw_snapshot)
        validations = result.dimensional.validations

        assert validations[DIM_CUSTOMERS].status == ValidationStatus.PASSED
        assert validations[DIM_PRODUCTS].status == ValidationStatus.PASSED
        assert validations[FACT_SALES].status == ValidationStatus.PARTIAL
        assert validations[FACT_SALES].warning_count == 2

    def test_validation_can_be_disabled(self, reference_date, raw_snapshot):
        transformer = WarehouseTransformer(reference_date=reference_date, enable_validation=False)

        result = transformer.run_full_etl(raw_snapshot)

        assert result.cleansed.validations == {}
        assert result.dimensional.validations == {}

    def test_each_run_gets_its_own_id(self, transformer, raw_snapshot):
        first = transformer.run_full_etl(raw_snapshot)
        second = transformer.run_full_etl(raw_snapshot)

        assert len(first.run_id) == 32
        assert first.run_id != second.run_id


class TestPersistence:
    """Tests for writing stage outputs to the data lake"""

    def test_outputs_written_as_parquet(self, reference_date, raw_snapshot, tmp_path: Path):
        transformer = WarehouseTransformer(
            reference_date=reference_date,
            enable_validation=False,
            persist_outputs=True,
            cleansed_path=str(tmp_path / "cleansed"),
            curated_path=str(tmp_path / "curated"),
        )

        result = transformer.run_full_etl(raw_snapshot)

        fact_path = result.dimensional.results[FACT_SALES].output_path
        assert fact_path == str(tmp_path / "curated" / "fact_sales.parquet")
        assert_frame_equal(pl.read_parquet(fact_path), result.dimensional.tables[FACT_SALES])
        assert (tmp_path / "cleansed" / "crm_cust_info.parquet").exists()

    def test_rerun_overwrites_previous_outputs(self, reference_date, raw_snapshot, tmp_path: Path):
        transformer = WarehouseTransformer(
            reference_date=reference_date,
            enable_validation=False,
            persist_outputs=True,
            cleansed_path=str(tmp_path / "cleansed"),
            curated_path=str(tmp_path / "curated"),
        )

        transformer.run_full_etl(raw_snapshot)
        transformer.run_full_etl(raw_snapshot)

        assert len(list((tmp_path / "curated").iterdir())) == 3
        assert len(list((tmp_path / "cleansed").iterdir())) == 6
