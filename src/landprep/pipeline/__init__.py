"""
Pipeline orchestration: boundaries, per-dataset theme processing and elevation.
"""

from landprep.pipeline.runner import (
    PipelineContext,
    PipelineReport,
    prepare_boundaries,
    run_all,
    run_dataset,
    run_elevation,
)

__all__ = [
    "PipelineContext",
    "PipelineReport",
    "prepare_boundaries",
    "run_all",
    "run_dataset",
    "run_elevation",
]
