"""
Pipeline Layer

Stage sequencing, progress aggregation and run state.

Usage:
    from trialscout.core.pipeline import PipelineCoordinator, RunOptions
"""
from .coordinator import PipelineCoordinator, ProgressCallback, RunOptions
from .progress import (
    STAGE_WEIGHTS,
    calculate_overall_progress,
    initial_stages,
    status_message,
)

__all__ = [
    "PipelineCoordinator",
    "ProgressCallback",
    "RunOptions",
    "STAGE_WEIGHTS",
    "calculate_overall_progress",
    "initial_stages",
    "status_message",
]
