"""
Pipeline progress aggregation and status helpers.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, List

from trialscout.core.records import (
    STAGE_ORDER,
    PipelineStageState,
    StageId,
    StageStatus,
)

# Overall-progress weight of each stage (sums to 100)
STAGE_WEIGHTS: Dict[StageId, int] = {
    StageId.DISCOVERY:     15,
    StageId.EXTRACTION:    35,
    StageId.MATCHING:      35,
    StageId.SUMMARIZATION: 15,
}


def initial_stages() -> List[PipelineStageState]:
    """All four stages, pending, in execution order."""
    return [PipelineStageState(stage=stage_id) for stage_id in STAGE_ORDER]


def calculate_overall_progress(stages: Iterable[PipelineStageState]) -> int:
    """
    Weighted overall percentage.

    A complete stage contributes its full weight, a running stage its weight
    scaled by the reported intra-stage progress, anything else nothing.
    """
    total = 0.0
    for state in stages:
        weight = STAGE_WEIGHTS[state.stage]
        if state.status is StageStatus.COMPLETE:
            total += weight
        elif state.status is StageStatus.RUNNING and state.progress is not None:
            total += weight * state.progress / 100
    return int(math.floor(total + 0.5))


def status_message(stages: Iterable[PipelineStageState]) -> str:
    """Human-readable status for a progress display."""
    stages = list(stages)

    for state in stages:
        if state.status is StageStatus.RUNNING:
            return state.name

    for state in stages:
        if state.status is StageStatus.ERROR:
            return f"Error: {state.error or 'Unknown error'}"

    if stages and all(s.status is StageStatus.COMPLETE for s in stages):
        return "Complete"

    return "Ready to start"
