"""
Unit Tests for Progress Aggregation

Tests for stage weights, overall progress and status messages.
"""
from trialscout.core.pipeline import (
    STAGE_WEIGHTS,
    calculate_overall_progress,
    initial_stages,
    status_message,
)
from trialscout.core.records import (
    STAGE_ORDER,
    PipelineRun,
    PipelineStageState,
    StageId,
    StageStatus,
)


def stages_with(**overrides):
    """Initial stages with some replaced, keyed by stage id value."""
    states = {s.stage.value: s for s in initial_stages()}
    for key, state in overrides.items():
        states[key] = state
    return [states[stage_id.value] for stage_id in STAGE_ORDER]


class TestProgress:
    """Tests for calculate_overall_progress."""

    def test_weights_sum_to_100(self):
        assert sum(STAGE_WEIGHTS.values()) == 100

    def test_initial_is_zero(self):
        stages = initial_stages()
        assert [s.status for s in stages] == [StageStatus.PENDING] * 4
        assert calculate_overall_progress(stages) == 0

    def test_complete_and_running(self):
        stages = stages_with(
            discovery=PipelineStageState(StageId.DISCOVERY, StageStatus.COMPLETE),
            extraction=PipelineStageState(StageId.EXTRACTION, StageStatus.RUNNING, progress=50),
        )
        # 15 + 35 * 0.5 = 32.5
        assert calculate_overall_progress(stages) == 33

    def test_error_contributes_nothing(self):
        stages = stages_with(
            discovery=PipelineStageState(StageId.DISCOVERY, StageStatus.COMPLETE),
            extraction=PipelineStageState(StageId.EXTRACTION, StageStatus.COMPLETE),
            matching=PipelineStageState(StageId.MATCHING, StageStatus.ERROR, error="boom"),
        )
        assert calculate_overall_progress(stages) == 50

    def test_all_complete(self):
        stages = [PipelineStageState(s, StageStatus.COMPLETE) for s in STAGE_ORDER]
        assert calculate_overall_progress(stages) == 100


class TestStatusMessage:
    """Tests for status_message."""

    def test_ready(self):
        assert status_message(initial_stages()) == "Ready to start"

    def test_running_stage_name(self):
        stages = stages_with(
            matching=PipelineStageState(StageId.MATCHING, StageStatus.RUNNING, progress=10),
        )
        assert status_message(stages) == "Matching Your Profile"

    def test_error(self):
        stages = stages_with(
            discovery=PipelineStageState(StageId.DISCOVERY, StageStatus.ERROR, error="API down"),
        )
        assert status_message(stages) == "Error: API down"

    def test_complete(self):
        run = PipelineRun(stages=tuple(PipelineStageState(s, StageStatus.COMPLETE) for s in STAGE_ORDER))
        assert run.status_message == "Complete"
        assert run.overall_progress == 100
