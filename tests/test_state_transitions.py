"""Execution state machine tests.

Tests the lifecycle status transitions:
- Valid: pending -> running -> completed/stopped/failed, stopped/failed -> running (resume)
- Invalid: raises InvalidStateTransition
- Progress bookkeeping always replaces collections with new objects
"""

import pytest

from moodseed.models.execution import (
    Execution,
    ExecutionStatus,
    GeneratedUnit,
    InvalidStateTransition,
)


def test_valid_state_transitions():
    execution = Execution(organization_id="org")
    assert execution.status == ExecutionStatus.PENDING

    execution.mark_running()
    assert execution.status == ExecutionStatus.RUNNING
    assert execution.started_at is not None

    execution.mark_completed(actual_cost=0.5)
    assert execution.status == ExecutionStatus.COMPLETED
    assert execution.actual_cost == 0.5
    assert execution.completed_at is not None
    assert execution.duration_ms >= 0
    assert execution.is_terminal


def test_invalid_state_transition_raises_exception():
    execution = Execution(organization_id="org")

    with pytest.raises(InvalidStateTransition, match="must be running"):
        execution.mark_completed(actual_cost=0.0)

    execution.mark_running()
    with pytest.raises(InvalidStateTransition, match="must be pending"):
        execution.mark_running()

    with pytest.raises(InvalidStateTransition, match="must be stopped or failed"):
        execution.mark_resumed()


@pytest.mark.parametrize("status", [ExecutionStatus.PENDING, ExecutionStatus.RUNNING])
def test_mark_failed_and_stopped_from_any_non_terminal_state(status):
    failed = Execution(organization_id="org", status=status)
    failed.mark_failed("boom")
    assert failed.status == ExecutionStatus.FAILED
    assert failed.error == "boom"

    stopped = Execution(organization_id="org", status=status)
    stopped.mark_stopped()
    assert stopped.status == ExecutionStatus.STOPPED


@pytest.mark.parametrize(
    "status", [ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.STOPPED]
)
def test_cannot_fail_or_stop_terminal_execution(status):
    execution = Execution(organization_id="org", status=status)

    with pytest.raises(InvalidStateTransition):
        execution.mark_failed("again")
    with pytest.raises(InvalidStateTransition):
        execution.mark_stopped()


def test_mark_failed_requires_error_message():
    execution = Execution(organization_id="org")

    with pytest.raises(ValueError):
        execution.mark_failed("")


def test_resume_starts_new_phase_and_clears_previous_errors():
    execution = Execution(organization_id="org")
    execution.mark_running()
    execution.record_unit_error("unit-a", "main_content: timeout")
    execution.bump_stats(errors_count=1, created=2, skipped=1)
    execution.mark_failed("State store failure", actual_cost=0.1)

    execution.mark_resumed()

    assert execution.status == ExecutionStatus.RUNNING
    assert execution.attempt == 2
    assert execution.error is None
    assert execution.completed_at is None
    assert execution.actual_cost is None
    assert execution.unit_errors == []
    assert execution.execution_stats.errors_count == 0
    assert execution.execution_stats.skipped == 0
    assert execution.execution_stats.created == 2


def test_remaining_units_follow_submission_order():
    execution = Execution(organization_id="org", candidate_unit_ids=["a", "b", "c", "d"])
    execution.record_generated(GeneratedUnit(unit_id="c", name="C"))
    execution.record_generated(GeneratedUnit(unit_id="a", name="A"))

    assert execution.remaining_unit_ids() == ["b", "d"]
    assert execution.generated_unit_ids == {"a", "c"}


def test_progress_updates_replace_collections():
    execution = Execution(organization_id="org")
    units_before = execution.generated_units
    stats_before = execution.stats

    execution.record_generated(GeneratedUnit(unit_id="a", name="A"))
    execution.bump_stats(created=1)

    assert units_before == []
    assert execution.generated_units is not units_before
    assert execution.stats is not stats_before
    assert execution.execution_stats.created == 1


def test_restore_progress_rolls_back_uncommitted_changes():
    execution = Execution(organization_id="org")
    execution.mark_running()
    snapshot = execution.progress_snapshot()

    execution.set_in_flight("a", "exec:a:1", 3)
    execution.record_generated(GeneratedUnit(unit_id="a", name="A"))
    execution.bump_stats(created=1)
    execution.mark_completed(actual_cost=0.0)

    execution.restore_progress(snapshot)

    assert execution.status == ExecutionStatus.RUNNING
    assert execution.generated_units == []
    assert execution.in_flight is None
    assert execution.execution_stats.created == 0


def test_call_counts_accumulate():
    execution = Execution(organization_id="org")

    execution.add_call_counts({"selection": 1, "image": 18})
    execution.add_call_counts({"image": 2, "main_content": 1})

    assert execution.call_counts == {"selection": 1, "image": 20, "main_content": 1}


def test_resume_of_never_started_execution_records_start_time():
    execution = Execution(organization_id="org")
    execution.mark_failed("Insufficient credits: required 2, available 0")
    assert execution.started_at is None

    execution.mark_resumed()

    assert execution.started_at is not None


def test_resume_keeps_original_start_time():
    execution = Execution(organization_id="org")
    execution.mark_running()
    started_at = execution.started_at
    execution.mark_stopped()

    execution.mark_resumed()

    assert execution.started_at == started_at
