"""
Data Transformation Module
"""
from .cleaners import CleaningStats, ConformanceEngine, clean_dataframe
from .dimensions import BuildStats, DimensionalBuilder
from .transformers import PipelineResult, PipelineStage, StageOutput, TransformResult, WarehouseTransformer

__all__ = [
    "CleaningStats",
    "ConformanceEngine",
    "clean_dataframe",
    "BuildStats",
    "DimensionalBuilder",
    "PipelineResult",
    "PipelineStage",
    "StageOutput",
    "TransformResult",
    "WarehouseTransformer",
]
