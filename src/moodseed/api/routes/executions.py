"""Bulk generation execution API endpoints.

This module implements REST endpoints for batch style generation:
- POST /api/executions - Submit a batch and start it in the background
- POST /api/executions/stream - Submit a batch and stream its progress (SSE)
- POST /api/executions/estimate - Estimate cost and credits without submitting
- GET /api/executions - Paginated execution history
- GET /api/executions/{execution_id} - Execution detail with summary
- GET /api/executions/{execution_id}/events - Attach to a running execution (SSE)
- POST /api/executions/{execution_id}/stop - Cooperative stop between units
- POST /api/executions/{execution_id}/resume - Continue a stopped or failed execution

The durable execution record is authoritative; event streams are best effort
and have no replay.
"""

from datetime import datetime
from typing import Any, AsyncIterator
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from moodseed.api.dependencies import (
    get_controller,
    get_ledger,
    get_settings,
    get_streamer,
    get_uow_factory,
)
from moodseed.core.config import Settings
from moodseed.core.dependencies import get_uow
from moodseed.models.execution import (
    Execution,
    ExecutionConfig,
    ExecutionStatus,
    InvalidStateTransition,
)
from moodseed.services.credits.ledger import CreditLedger
from moodseed.services.exceptions import ExecutionNotFoundError, InsufficientCreditsError
from moodseed.services.execution.controller import ExecutionController
from moodseed.services.execution.events import EventType, ProgressEvent, execution_summary
from moodseed.services.execution.streamer import ProgressStreamer, Subscription
from moodseed.services.generation import cost_estimator
from moodseed.uow import UnitOfWork

logger = structlog.get_logger()
router = APIRouter(prefix="/api/executions", tags=["executions"])


# Request/Response Models


class SubmitExecutionRequest(BaseModel):
    """Request model for submitting or estimating a batch."""

    organization_id: str = Field(
        ...,
        description="Organization paying for the batch",
        min_length=1,
        max_length=255,
    )
    config: ExecutionConfig = Field(
        default_factory=ExecutionConfig,
        description="Batch configuration (limit, filters, toggles, price level, dry run)",
    )


class EstimateResponse(BaseModel):
    """Pre-flight estimate for a batch configuration."""

    unit_count: int = Field(..., description="Units the batch would process")
    already_done: int = Field(..., description="Matching units that already have a style")
    breakdown: cost_estimator.CostBreakdown
    formatted_cost: str
    estimated_minutes: int
    formatted_duration: str
    credits_per_unit: int
    required_credits: int
    balance: int
    sufficient_balance: bool


class ExecutionSummaryResponse(BaseModel):
    """Execution list entry / submission response."""

    id: UUID
    organization_id: str
    status: ExecutionStatus
    summary: dict[str, Any]
    credits_per_unit: int
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ExecutionDetailResponse(ExecutionSummaryResponse):
    """Full execution checkpoint."""

    config: dict[str, Any]
    stats: dict[str, Any]
    generated_units: list[dict[str, Any]]
    unit_errors: list[dict[str, Any]]
    call_counts: dict[str, int]
    in_flight: dict[str, Any] | None = None
    live: bool = Field(..., description="True if the run is active in this process")


class ExecutionListResponse(BaseModel):
    executions: list[ExecutionSummaryResponse]
    total: int
    offset: int
    limit: int


class StopResponse(BaseModel):
    execution_id: UUID
    status: ExecutionStatus
    stop_requested: bool


def _summary_response(execution: Execution) -> ExecutionSummaryResponse:
    return ExecutionSummaryResponse(
        id=execution.id,
        organization_id=execution.organization_id,
        status=execution.status,
        summary=execution_summary(execution),
        credits_per_unit=execution.credits_per_unit,
        created_at=execution.created_at,
        started_at=execution.started_at,
        completed_at=execution.completed_at,
    )


def _not_found(execution_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail=f"Execution {execution_id} not found"
    )


async def _event_stream(
    streamer: ProgressStreamer, subscription: Subscription
) -> AsyncIterator[str]:
    try:
        async for event in subscription:
            yield event.to_sse()
    finally:
        # Client gone or stream ended; the execution keeps running either way
        streamer.unsubscribe(subscription)


async def _single_event(event: ProgressEvent) -> AsyncIterator[str]:
    yield event.to_sse()


def _sse_response(body: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(
        body,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# API Endpoints


@router.post("/estimate", response_model=EstimateResponse)
async def estimate_execution(
    request: SubmitExecutionRequest,
    uow_factory=Depends(get_uow_factory),
    ledger: CreditLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
) -> EstimateResponse:
    """Estimate cost, duration and credits for a batch without submitting it.

    An insufficient balance is reported in the body (sufficient_balance=false),
    not as an error.
    """
    async with await uow_factory() as uow:
        candidates = await uow.executions.list_candidate_units(request.config)

    breakdown = cost_estimator.estimate(request.config, candidates.total)
    minutes = cost_estimator.estimate_duration_minutes(request.config, candidates.total)
    credits_per_unit = (
        0
        if request.config.dry_run
        else cost_estimator.credits_for(request.config, settings.credit_value_usd)
    )
    required = credits_per_unit * candidates.total
    balance = await ledger.get_balance(request.organization_id)

    return EstimateResponse(
        unit_count=candidates.total,
        already_done=candidates.already_done,
        breakdown=breakdown,
        formatted_cost=cost_estimator.format_cost(breakdown.total),
        estimated_minutes=minutes,
        formatted_duration=cost_estimator.format_duration(minutes),
        credits_per_unit=credits_per_unit,
        required_credits=required,
        balance=balance,
        sufficient_balance=balance >= required,
    )


@router.post(
    "", response_model=ExecutionSummaryResponse, status_code=status.HTTP_202_ACCEPTED
)
async def submit_execution(
    request: SubmitExecutionRequest,
    controller: ExecutionController = Depends(get_controller),
    uow_factory=Depends(get_uow_factory),
) -> ExecutionSummaryResponse:
    """Submit a batch and run it in the background.

    The response is returned as soon as the execution record exists; follow
    progress with GET /{execution_id} or the events stream.
    """
    execution_id = await controller.submit(request.organization_id, request.config)

    async with await uow_factory() as uow:
        execution = await uow.executions.get_by_id(execution_id)

    logger.info(
        "api.execution_submitted",
        execution_id=str(execution_id),
        organization_id=request.organization_id,
    )
    return _summary_response(execution)


@router.post("/stream")
async def submit_and_stream(
    request: SubmitExecutionRequest,
    controller: ExecutionController = Depends(get_controller),
    streamer: ProgressStreamer = Depends(get_streamer),
) -> StreamingResponse:
    """Submit a batch and stream its progress as Server-Sent Events.

    The subscription is attached before the run starts, so the stream begins
    with the `start` event. Disconnecting does not stop the execution.
    """
    execution_id = await controller.submit(request.organization_id, request.config, start=False)
    subscription = streamer.subscribe(execution_id)
    controller.start(execution_id)
    return _sse_response(_event_stream(streamer, subscription))


@router.get("", response_model=ExecutionListResponse)
async def list_executions(
    organization_id: str | None = Query(default=None),
    status_filter: ExecutionStatus | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    uow: UnitOfWork = Depends(get_uow),
) -> ExecutionListResponse:
    """Execution history, newest first."""
    executions, total = await uow.executions.list_paginated(
        organization_id=organization_id, status=status_filter, offset=offset, limit=limit
    )
    return ExecutionListResponse(
        executions=[_summary_response(execution) for execution in executions],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{execution_id}", response_model=ExecutionDetailResponse)
async def get_execution(
    execution_id: UUID,
    uow: UnitOfWork = Depends(get_uow),
    controller: ExecutionController = Depends(get_controller),
) -> ExecutionDetailResponse:
    execution = await uow.executions.get_by_id(execution_id)
    if execution is None:
        raise _not_found(execution_id)

    return ExecutionDetailResponse(
        **_summary_response(execution).model_dump(),
        config=execution.config,
        stats=execution.stats,
        generated_units=execution.generated_units,
        unit_errors=execution.unit_errors,
        call_counts=execution.call_counts,
        in_flight=execution.in_flight,
        live=controller.is_live(execution_id),
    )


@router.get("/{execution_id}/events")
async def stream_execution_events(
    execution_id: UUID,
    uow_factory=Depends(get_uow_factory),
    streamer: ProgressStreamer = Depends(get_streamer),
) -> StreamingResponse:
    """Stream progress events for an execution as Server-Sent Events.

    Only events published after attaching are delivered. An execution that
    already finished yields its terminal event and the stream closes.
    """
    async with await uow_factory() as uow:
        execution = await uow.executions.get_by_id(execution_id)
    if execution is None:
        raise _not_found(execution_id)

    if execution.is_terminal and not streamer.is_active(execution_id):
        event_type = (
            EventType.ERROR if execution.status == ExecutionStatus.FAILED else EventType.COMPLETE
        )
        event = ProgressEvent(
            type=event_type,
            execution_id=execution_id,
            data={"summary": execution_summary(execution), "error": execution.error},
        )
        return _sse_response(_single_event(event))

    subscription = streamer.subscribe(execution_id)
    return _sse_response(_event_stream(streamer, subscription))


@router.post(
    "/{execution_id}/stop", response_model=StopResponse, status_code=status.HTTP_202_ACCEPTED
)
async def stop_execution(
    execution_id: UUID,
    controller: ExecutionController = Depends(get_controller),
) -> StopResponse:
    """Request a stop; a live run stops after its current unit."""
    try:
        execution = await controller.stop(execution_id)
    except ExecutionNotFoundError:
        raise _not_found(execution_id)
    except InvalidStateTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return StopResponse(execution_id=execution_id, status=execution.status, stop_requested=True)


@router.post(
    "/{execution_id}/resume",
    response_model=ExecutionSummaryResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def resume_execution(
    execution_id: UUID,
    controller: ExecutionController = Depends(get_controller),
) -> ExecutionSummaryResponse:
    """Continue a stopped or failed execution from its first missing unit."""
    try:
        execution = await controller.resume(execution_id)
    except ExecutionNotFoundError:
        raise _not_found(execution_id)
    except InvalidStateTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))

    return _summary_response(execution)
