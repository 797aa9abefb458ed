"""
Warehouse Transformer

Pipeline orchestrator: runs the cleansing stage over a raw snapshot, then
the dimensional build over the cleansed output, with optional data-quality
checks and persistence of every stage output.
"""

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple, Union

import polars as pl
import structlog

from retail_warehouse.config import get_settings
from retail_warehouse.models import (
    DIM_CUSTOMERS,
    DIM_PRODUCTS,
    FACT_SALES,
    SOURCE_TABLES,
    IssueType,
    RecordKind,
    validate_snapshot,
)
from retail_warehouse.quality.validators import (
    ValidationResult,
    create_cleansed_customers_validator,
    create_cleansed_products_validator,
    create_customer_dimension_validator,
    create_product_dimension_validator,
    create_sales_fact_validator,
)
from .cleaners import ConformanceEngine
from .dimensions import DimensionalBuilder

logger = structlog.get_logger(__name__)


class PipelineStage(str, Enum):
    """Pipeline stages, in execution order"""
    CLEANSING = "cleansing"
    DIMENSIONAL = "dimensional"


@dataclass
class TransformResult:
    """Result of transforming one table"""
    stage: PipelineStage
    name: str
    input_rows: int
    output_rows: int
    rows_dropped: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    issues: Dict[IssueType, int] = field(default_factory=dict)
    output_path: Optional[str] = None


@dataclass
class StageOutput:
    """Tables, per-table results and validation outcomes of one stage"""
    stage: PipelineStage
    tables: Dict
    results: Dict[str, TransformResult] = field(default_factory=dict)
    validations: Dict[str, ValidationResult] = field(default_factory=dict)


@dataclass
class PipelineResult:
    """Result of a full cleansing + dimensional run"""
    cleansed: StageOutput
    dimensional: StageOutput
    started_at: datetime
    completed_at: datetime
    run_id: str = ""

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def issue_totals(self) -> Dict[IssueType, int]:
        """Row-level issue counts summed over every table"""
        totals = {issue: 0 for issue in IssueType}
        for stage in (self.cleansed, self.dimensional):
            for result in stage.results.values():
                for issue, count in result.issues.items():
                    totals[issue] += count
        return totals


RawSnapshot = Mapping[Union[RecordKind, str], pl.DataFrame]


class WarehouseTransformer:
    """
    Main pipeline orchestrator.

    Each run recomputes every table from the raw snapshot; nothing is
    patched incrementally, so rerunning repairs any earlier bad run.

    Example:
        transformer = WarehouseTransformer(reference_date=date(2024, 1, 1))
        result = transformer.run_full_etl(raw_frames)
        result.dimensional.tables["fact_sales"]
    """

    def __init__(
        self,
        reference_date: Optional[date] = None,
        parallel: Optional[bool] = None,
        enable_validation: Optional[bool] = None,
        persist_outputs: Optional[bool] = None,
        cleansed_path: Optional[str] = None,
        curated_path: Optional[str] = None,
    ):
        settings = get_settings()
        self.settings = settings
        self.parallel = settings.pipeline.parallel_cleansing if parallel is None else parallel
        self.enable_validation = (
            settings.data_quality.enable_data_quality_checks if enable_validation is None else enable_validation
        )
        self.persist_outputs = settings.data_lake.persist_outputs if persist_outputs is None else persist_outputs
        self.cleansed_path = Path(cleansed_path or settings.data_lake.cleansed_path)
        self.curated_path = Path(curated_path or settings.data_lake.curated_path)
        self.engine = ConformanceEngine(reference_date=reference_date)
        self.builder = DimensionalBuilder()

    def _write_output(self, df: pl.DataFrame, directory: Path, name: str) -> str:
        """Write a table to the data lake, replacing the previous run's file"""
        directory.mkdir(parents=True, exist_ok=True)
        output_file = directory / f"{name}.parquet"

        df.write_parquet(output_file, compression=self.settings.data_lake.compression)
        logger.info(f"Written {len(df)} rows to {output_file}")

        return str(output_file)

    def _clean_one(
        self,
        kind: RecordKind,
        df: pl.DataFrame,
    ) -> Tuple[pl.DataFrame, TransformResult]:
        started_at = datetime.utcnow()
        cleaned, stats = self.engine.clean(df, kind)
        completed_at = datetime.utcnow()

        return cleaned, TransformResult(
            stage=PipelineStage.CLEANSING,
            name=SOURCE_TABLES[kind],
            input_rows=stats.total_rows,
            output_rows=stats.rows_after_cleaning,
            rows_dropped=stats.total_rows - stats.rows_after_cleaning,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            issues=stats.issues,
        )

    def run_cleansing(self, raw: RawSnapshot) -> StageOutput:
        """
        Cleanse a complete raw snapshot.

        Args:
            raw: Raw frames keyed by record kind

        Returns:
            StageOutput whose tables are keyed by RecordKind

        Raises:
            MissingCollectionError: If a collection or required column is absent
        """
        snapshot = {RecordKind(kind): df for kind, df in raw.items()}
        validate_snapshot(snapshot)

        logger.info(
            "Starting cleansing stage",
            parallel=self.parallel,
            rows={kind.value: df.height for kind, df in snapshot.items()},
        )

        if self.parallel:
            with ThreadPoolExecutor(max_workers=self.settings.pipeline.max_workers) as pool:
                futures = {kind: pool.submit(self._clean_one, kind, snapshot[kind]) for kind in RecordKind}
                outcomes = {kind: future.result() for kind, future in futures.items()}
        else:
            outcomes = {kind: self._clean_one(kind, snapshot[kind]) for kind in RecordKind}

        output = StageOutput(stage=PipelineStage.CLEANSING, tables={})
        for kind in RecordKind:
            cleaned, result = outcomes[kind]
            if self.persist_outputs:
                result.output_path = self._write_output(cleaned, self.cleansed_path, result.name)
            output.tables[kind] = cleaned
            output.results[result.name] = result

        if self.enable_validation:
            strict = self.settings.data_quality.strict_mode
            output.validations[SOURCE_TABLES[RecordKind.CUSTOMERS]] = (
                create_cleansed_customers_validator(strict).validate(output.tables[RecordKind.CUSTOMERS])
            )
            output.validations[SOURCE_TABLES[RecordKind.PRODUCTS]] = (
                create_cleansed_products_validator(strict).validate(output.tables[RecordKind.PRODUCTS])
            )

        return output

    def run_dimensional_build(self, cleansed: Mapping[RecordKind, pl.DataFrame]) -> StageOutput:
        """
        Build the star schema from a complete cleansed snapshot.

        Args:
            cleansed: Cleansed frames keyed by record kind

        Returns:
            StageOutput whose tables are keyed by table name
        """
        started_at = datetime.utcnow()
        tables, stats = self.builder.build(cleansed)
        completed_at = datetime.utcnow()

        output = StageOutput(stage=PipelineStage.DIMENSIONAL, tables=tables)
        for name, table_stats in stats.items():
            result = TransformResult(
                stage=PipelineStage.DIMENSIONAL,
                name=name,
                input_rows=table_stats.input_rows,
                output_rows=table_stats.output_rows,
                rows_dropped=table_stats.input_rows - table_stats.output_rows,
                started_at=started_at,
                completed_at=completed_at,
                duration_seconds=(completed_at - started_at).total_seconds(),
                issues=table_stats.issues,
            )
            if self.persist_outputs:
                result.output_path = self._write_output(tables[name], self.curated_path, name)
            output.results[name] = result

        if self.enable_validation:
            strict = self.settings.data_quality.strict_mode
            output.validations[DIM_CUSTOMERS] = (
                create_customer_dimension_validator(strict).validate(tables[DIM_CUSTOMERS])
            )
            output.validations[DIM_PRODUCTS] = (
                create_product_dimension_validator(strict).validate(tables[DIM_PRODUCTS])
            )
            output.validations[FACT_SALES] = create_sales_fact_validator(
                tables[DIM_CUSTOMERS], tables[DIM_PRODUCTS], strict
            ).validate(tables[FACT_SALES])

        return output

    def run_full_etl(self, raw: RawSnapshot) -> PipelineResult:
        """
        Run cleansing then the dimensional build.

        The builder starts only once all six cleansed tables exist.

        Args:
            raw: Raw frames keyed by record kind

        Returns:
            PipelineResult with both stage outputs
        """
        run_id = uuid.uuid4().hex
        started_at = datetime.utcnow()

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            logger.info("Starting full ETL pipeline")

            cleansed = self.run_cleansing(raw)
            dimensional = self.run_dimensional_build(cleansed.tables)

            result = PipelineResult(
                cleansed=cleansed,
                dimensional=dimensional,
                started_at=started_at,
                completed_at=datetime.utcnow(),
                run_id=run_id,
            )

            totals = result.issue_totals
            logger.info(
                f"Full ETL complete in {result.duration_seconds:.2f}s",
                malformed_fields=totals[IssueType.MALFORMED_FIELD],
                missing_identity=totals[IssueType.MISSING_IDENTITY],
                unresolved_references=totals[IssueType.UNRESOLVED_REFERENCE],
            )

        return result
