"""Execution controller: schedules one batch run at a time per execution.

For every remaining work unit the controller writes an in-flight checkpoint,
deducts the unit's credits, runs the generation pipeline, then records the
outcome (style + checkpoint on success, refund + checkpoint on failure) and
publishes progress. Units of one execution run strictly one after another;
distinct executions run as separate asyncio tasks.

Stop is cooperative and only honored between units. Resume continues a
stopped or failed execution from its first unit missing in generated_units.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from moodseed.core.config import Settings
from moodseed.core.timezone import utcnow
from moodseed.models.catalog import Style
from moodseed.models.execution import (
    Execution,
    ExecutionConfig,
    ExecutionStats,
    ExecutionStatus,
    GeneratedUnit,
    InvalidStateTransition,
    WorkUnit,
)
from moodseed.repositories.execution import to_work_unit
from moodseed.services.credits.ledger import CreditLedger
from moodseed.services.exceptions import (
    ExecutionNotFoundError,
    InsufficientCreditsError,
    StateStoreError,
    UnitGenerationError,
)
from moodseed.services.execution.events import EventType, ProgressEvent, execution_summary
from moodseed.services.execution.streamer import ProgressStreamer
from moodseed.services.generation import cost_estimator
from moodseed.services.generation.pipeline import GenerationPipeline, UnitResult
from moodseed.services.generation.rate_limiter import RateLimiter
from moodseed.services.generation.replicate_client import (
    ReplicateImageGenerator,
    ReplicateTextGenerator,
)
from moodseed.uow import UnitOfWork

logger = structlog.get_logger()

INTERRUPTED_ERROR = "interrupted: process exited while the execution was running"


@dataclass
class UnitOutcome:
    """How one unit ended, as reported in its progress event."""

    unit_id: str
    unit_status: str  # created, updated, skipped or failed
    unit_name: str | None = None
    reason: str | None = None
    error: str | None = None

    def event_fields(self) -> dict:
        return {name: value for name, value in asdict(self).items() if value is not None}


@dataclass
class ReconcileResult:
    """Result of an orphaned-execution sweep."""

    scanned: int  # pending/running executions inspected
    interrupted: int  # executions marked failed
    refunded: int  # in-flight deductions refunded
    skipped_live: int  # executions running in this process
    errors: list[str] = field(default_factory=list)


class ExecutionController:
    """Drives executions through pending -> running -> completed/failed/stopped.

    The controller is the only writer of Execution records. It never calls the
    ledger for units already present in generated_units.
    """

    def __init__(
        self,
        uow_factory,
        ledger: CreditLedger,
        pipeline: GenerationPipeline,
        streamer: ProgressStreamer,
        settings: Settings,
    ):
        """Initialize controller.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            ledger: Credit ledger used for deductions and refunds
            pipeline: Generation pipeline run for every unit
            streamer: Progress streamer events are published to
            settings: Application settings (credit value, grace periods)
        """
        self.uow_factory = uow_factory
        self.ledger = ledger
        self.pipeline = pipeline
        self.streamer = streamer
        self.settings = settings
        self._tasks: dict[UUID, asyncio.Task] = {}
        self._stop_events: dict[UUID, asyncio.Event] = {}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def submit(
        self, organization_id: str, config: ExecutionConfig, start: bool = True
    ) -> UUID:
        """Create a pending execution with its candidate set frozen.

        Args:
            organization_id: Organization paying for the batch
            config: Batch configuration
            start: Schedule the run as a background task right away

        Returns:
            Id of the new execution
        """
        async with await self.uow_factory() as uow:
            candidates = await uow.executions.list_candidate_units(config)
            estimate = cost_estimator.estimate(config, candidates.total)
            credits_per_unit = (
                0
                if config.dry_run
                else cost_estimator.credits_for(config, self.settings.credit_value_usd)
            )

            execution = Execution(
                organization_id=organization_id,
                config=config.model_dump(mode="json"),
                stats=ExecutionStats(
                    total_candidates=candidates.total,
                    already_done=candidates.already_done,
                ).model_dump(),
                candidate_unit_ids=[unit.unit_id for unit in candidates.units],
                credits_per_unit=credits_per_unit,
                estimated_cost=estimate.total,
            )
            await uow.executions.add(execution)
            execution_id = execution.id

        logger.info(
            "execution.submitted",
            execution_id=str(execution_id),
            organization_id=organization_id,
            total_candidates=candidates.total,
            already_done=candidates.already_done,
            estimated_cost=estimate.total,
            credits_per_unit=credits_per_unit,
            dry_run=config.dry_run,
        )

        if start:
            self.start(execution_id)
        return execution_id

    def start(self, execution_id: UUID) -> asyncio.Task:
        """Schedule run() as a background task; returns the existing task if one is live."""
        task = self._tasks.get(execution_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self.run(execution_id), name=f"execution-{execution_id}")
        self._tasks[execution_id] = task

        def on_done(finished: asyncio.Task) -> None:
            if self._tasks.get(execution_id) is finished:
                self._tasks.pop(execution_id, None)
            if finished.cancelled():
                logger.warning("execution.task_cancelled", execution_id=str(execution_id))
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    "execution.task_crashed",
                    execution_id=str(execution_id),
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=exc,
                )

        task.add_done_callback(on_done)
        return task

    def is_live(self, execution_id: UUID) -> bool:
        task = self._tasks.get(execution_id)
        return task is not None and not task.done()

    async def stop(self, execution_id: UUID) -> Execution:
        """Request a cooperative stop.

        A live run stops at the next unit boundary. An execution with no live
        run in this process (pending, or left running by a dead process) is
        stopped immediately after its in-flight deduction is reconciled.

        Raises:
            ExecutionNotFoundError: If the execution does not exist
            InvalidStateTransition: If the execution is already terminal
        """
        execution = await self._load(execution_id)
        if execution.is_terminal:
            raise InvalidStateTransition(
                f"Cannot stop execution in terminal state {execution.status.value}."
            )

        if self.is_live(execution_id):
            self._stop_events.setdefault(execution_id, asyncio.Event()).set()
            logger.info("execution.stop_requested", execution_id=str(execution_id))
            return execution

        await self._reconcile_in_flight(execution)
        execution.mark_stopped(actual_cost=self._actual_cost(execution))
        await self._checkpoint(execution)
        logger.info("execution.stopped", execution_id=str(execution_id), live=False)
        return execution

    async def resume(self, execution_id: UUID, start: bool = True) -> Execution:
        """Start a new running phase for a stopped or failed execution.

        The in-flight deduction of the previous phase is reconciled first, then
        the balance is checked for the remaining units. Units already in
        generated_units are never processed or charged again.

        Raises:
            ExecutionNotFoundError: If the execution does not exist
            InvalidStateTransition: If the execution is not stopped or failed,
                or is still live in this process
            InsufficientCreditsError: If the balance does not cover the remaining units
        """
        if self.is_live(execution_id):
            raise InvalidStateTransition("Execution is still running in this process.")

        execution = await self._load(execution_id)
        if execution.status not in (ExecutionStatus.STOPPED, ExecutionStatus.FAILED):
            raise InvalidStateTransition(
                f"Cannot resume from {execution.status.value}. Execution must be stopped or failed."
            )

        refunded = await self._reconcile_in_flight(execution)

        remaining = execution.remaining_unit_ids()
        required = execution.credits_per_unit * len(remaining)
        if required > 0:
            available = await self.ledger.get_balance(execution.organization_id)
            if available < required:
                if refunded:
                    await self._checkpoint(execution)
                raise InsufficientCreditsError(required=required, available=available)

        execution.mark_resumed()
        await self._checkpoint(execution)
        # New phase: subscribers attaching from now on wait for its events
        self.streamer.begin(execution_id)

        logger.info(
            "execution.resumed",
            execution_id=str(execution_id),
            attempt=execution.attempt,
            remaining=len(remaining),
            already_generated=len(execution.generated_units),
            in_flight_refunded=refunded,
        )

        if start:
            self.start(execution_id)
        return execution

    async def run(self, execution_id: UUID) -> Execution:
        """Run one phase of an execution to a terminal state.

        A pending execution is pre-flight checked first; a running execution
        (after resume) continues directly with its remaining units.

        Returns:
            The execution in its terminal state

        Raises:
            ExecutionNotFoundError: If the execution does not exist
            InvalidStateTransition: If the execution is already terminal
        """
        execution = await self._load(execution_id)
        if execution.is_terminal:
            raise InvalidStateTransition(
                f"Cannot run execution in terminal state {execution.status.value}."
            )

        log = logger.bind(execution_id=str(execution_id), organization_id=execution.organization_id)
        stop_event = self._stop_events.setdefault(execution_id, asyncio.Event())
        config = execution.execution_config

        self.streamer.begin(execution_id)
        self._publish(
            execution,
            EventType.START,
            total=len(execution.candidate_unit_ids),
            remaining=len(execution.remaining_unit_ids()),
            attempt=execution.attempt,
            estimated_cost=execution.estimated_cost,
            credits_per_unit=execution.credits_per_unit,
            dry_run=config.dry_run,
        )

        try:
            if execution.status == ExecutionStatus.PENDING:
                if not await self._preflight(execution, config, log):
                    return execution

            await self._run_units(execution, config, stop_event, log)

        except StateStoreError as e:
            await self._fail_after_state_store_error(execution, e, log)

        finally:
            self._stop_events.pop(execution_id, None)

        return execution

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Ask every live run to stop, then cancel runs that did not finish in time.

        Cancelled runs keep status running with their in-flight marker; the
        orphan sweep reconciles them after a restart.
        """
        tasks = [task for task in self._tasks.values() if not task.done()]
        if not tasks:
            return

        for execution_id in list(self._tasks):
            self._stop_events.setdefault(execution_id, asyncio.Event()).set()

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("controller.shutdown", stopped=len(done), cancelled=len(pending))

    async def reconcile_orphans(
        self, grace_seconds: int | None = None, dry_run: bool = False
    ) -> ReconcileResult:
        """Sweep executions left pending or running by a process that died.

        Executions untouched for longer than the grace period and not live in
        this process get their in-flight deduction refunded (at most once)
        and are marked failed, which makes them resumable.

        Args:
            grace_seconds: Minimum age of the last checkpoint (default from settings)
            dry_run: Report what would be reconciled without writing

        Returns:
            ReconcileResult with counters
        """
        grace = self.settings.orphan_grace_seconds if grace_seconds is None else grace_seconds
        cutoff = utcnow() - timedelta(seconds=grace)

        async with await self.uow_factory() as uow:
            candidates = await uow.executions.get_by_status(ExecutionStatus.RUNNING)
            candidates += await uow.executions.get_by_status(ExecutionStatus.PENDING)

        result = ReconcileResult(scanned=len(candidates), interrupted=0, refunded=0, skipped_live=0)

        for execution in candidates:
            if self.is_live(execution.id):
                result.skipped_live += 1
                continue
            if execution.updated_at > cutoff:
                continue

            if dry_run:
                result.interrupted += 1
                if execution.in_flight is not None:
                    result.refunded += 1
                continue

            try:
                # Re-read: it may have finished since the listing
                execution = await self._load(execution.id)
                if execution.is_terminal or execution.updated_at > cutoff:
                    continue
                if await self._reconcile_in_flight(execution):
                    result.refunded += 1
                execution.mark_failed(INTERRUPTED_ERROR, actual_cost=self._actual_cost(execution))
                await self._checkpoint(execution)
                result.interrupted += 1
                logger.warning(
                    "execution.orphan_reconciled",
                    execution_id=str(execution.id),
                    organization_id=execution.organization_id,
                )
            except (StateStoreError, SQLAlchemyError) as e:
                result.errors.append(f"{execution.id}: {e}")
                logger.error(
                    "execution.orphan_reconcile_failed",
                    execution_id=str(execution.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info(
            "execution.orphan_sweep_completed",
            scanned=result.scanned,
            interrupted=result.interrupted,
            refunded=result.refunded,
            skipped_live=result.skipped_live,
            errors=len(result.errors),
            dry_run=dry_run,
        )
        return result

    # ------------------------------------------------------------------
    # Phase steps
    # ------------------------------------------------------------------

    async def _preflight(self, execution: Execution, config: ExecutionConfig, log) -> bool:
        """Check the balance for every planned unit; returns False if the run failed."""
        required = execution.credits_per_unit * len(execution.remaining_unit_ids())

        if not config.dry_run and required > 0:
            available = await self.ledger.get_balance(execution.organization_id)
            if available < required:
                error = InsufficientCreditsError(required=required, available=available)
                snapshot = execution.progress_snapshot()
                execution.mark_failed(str(error), actual_cost=0.0)
                await self._checkpoint(execution, snapshot)
                log.warning("execution.preflight_failed", required=required, available=available)
                self._publish(
                    execution,
                    EventType.ERROR,
                    error=str(error),
                    code="insufficient_credits",
                    required=required,
                    available=available,
                    summary=execution_summary(execution),
                )
                return False

        snapshot = execution.progress_snapshot()
        execution.mark_running()
        await self._checkpoint(execution, snapshot)
        log.info("execution.started", required_credits=required, dry_run=config.dry_run)
        return True

    async def _run_units(
        self, execution: Execution, config: ExecutionConfig, stop_event: asyncio.Event, log
    ) -> None:
        pending = execution.remaining_unit_ids()
        total = len(execution.candidate_unit_ids)
        done_before = total - len(pending)
        stopped = False

        for index, unit_id in enumerate(pending):
            if stop_event.is_set():
                stopped = True
                break

            outcome = await self._process_unit(execution, unit_id, config, log)

            self._publish(
                execution,
                EventType.PROGRESS,
                current=done_before + index + 1,
                total=total,
                stats=execution.execution_stats.model_dump(),
                **outcome.event_fields(),
            )
            # Unit boundary: let stop requests and other executions in
            await asyncio.sleep(0)

        actual = self._actual_cost(execution)
        snapshot = execution.progress_snapshot()
        if stopped:
            execution.mark_stopped(actual_cost=actual)
        else:
            execution.mark_completed(actual_cost=actual)
        await self._checkpoint(execution, snapshot)

        stats = execution.execution_stats
        log.info(
            "execution.stopped" if stopped else "execution.completed",
            created=stats.created,
            updated=stats.updated,
            skipped=stats.skipped,
            errors_count=stats.errors_count,
            actual_cost=actual,
            duration_ms=execution.duration_ms,
        )
        self._publish(execution, EventType.COMPLETE, summary=execution_summary(execution))

    async def _process_unit(
        self, execution: Execution, unit_id: str, config: ExecutionConfig, log
    ) -> UnitOutcome:
        """Process one unit and checkpoint its outcome.

        Returns:
            Outcome fields for the progress event

        Raises:
            StateStoreError: If a checkpoint or ledger write fails
        """
        unit = await self._load_unit(unit_id)

        if unit is None or config.dry_run:
            reason = "source_missing" if unit is None else "dry_run"
            snapshot = execution.progress_snapshot()
            execution.bump_stats(skipped=1)
            await self._checkpoint(execution, snapshot)
            log.info("execution.unit.skipped", unit_id=unit_id, reason=reason)
            return UnitOutcome(
                unit_id=unit_id,
                unit_status="skipped",
                unit_name=unit.name if unit else None,
                reason=reason,
            )

        unit_log = log.bind(unit_id=unit_id, unit_name=unit.name)
        amount = execution.credits_per_unit
        reference_id = f"{execution.id}:{unit_id}:{execution.attempt}"

        snapshot = execution.progress_snapshot()
        execution.set_in_flight(unit_id, reference_id, amount)
        await self._checkpoint(execution, snapshot)

        try:
            await self._ledger_write(
                self.ledger.deduct(
                    execution.organization_id,
                    amount,
                    reference_id,
                    reference_type="execution_unit",
                    description=f"Style generation: {unit.name}",
                )
            )
        except InsufficientCreditsError as e:
            # Balance drained mid-run: nothing was deducted, nothing to refund
            return await self._record_unit_failure(execution, unit, str(e), unit_log, refund=None)

        try:
            result = await self.pipeline.run(unit, config)
        except Exception as e:
            # Anything unexpected from a collaborator fails the unit, not the batch
            unit_log.error("execution.unit.crashed", error=str(e), error_type=type(e).__name__)
            return await self._record_unit_failure(
                execution, unit, f"Unexpected error: {e}", unit_log, refund=(reference_id, amount)
            )

        execution.add_call_counts(result.call_counts)
        self._publish_metrics(execution, unit_id, result)

        try:
            result.raise_for_failure()
        except UnitGenerationError as e:
            return await self._record_unit_failure(
                execution, unit, str(e), unit_log, refund=(reference_id, amount)
            )

        return await self._record_unit_success(execution, unit, result, unit_log)

    async def _record_unit_success(
        self, execution: Execution, unit: WorkUnit, result: UnitResult, log
    ) -> UnitOutcome:
        """Write the style and the checkpoint in one transaction."""
        snapshot = execution.progress_snapshot()
        written: dict = {}

        async def write_style(uow: UnitOfWork) -> None:
            sub_category_id = UUID(unit.unit_id)
            style = await uow.styles.get_by_sub_category(sub_category_id)
            created = style is None
            if style is None:
                style = Style(slug=unit.slug, name=unit.name, sub_category_id=sub_category_id)
            style.approach = result.approach
            style.color = result.color
            style.price_level = result.price_level
            style.content = result.content
            style.room_profiles = result.room_profiles
            style.gallery = result.gallery
            style.execution_id = execution.id
            style.updated_at = utcnow()
            await uow.styles.add(style)

            execution.record_generated(
                GeneratedUnit(unit_id=unit.unit_id, name=unit.name, external_reference=str(style.id))
            )
            execution.bump_stats(**({"created": 1} if created else {"updated": 1}))
            execution.clear_in_flight()
            written["created"] = created
            written["style_id"] = str(style.id)

        await self._checkpoint(execution, snapshot, before_save=write_style)

        log.info(
            "execution.unit.completed",
            style_id=written["style_id"],
            created=written["created"],
            images=len(result.gallery),
        )
        self._publish(
            execution,
            EventType.UNIT_COMPLETED,
            unit_id=unit.unit_id,
            unit_name=unit.name,
            style_id=written["style_id"],
            created=written["created"],
        )
        return UnitOutcome(
            unit_id=unit.unit_id,
            unit_status="created" if written["created"] else "updated",
            unit_name=unit.name,
        )

    async def _record_unit_failure(
        self,
        execution: Execution,
        unit: WorkUnit,
        error: str,
        log,
        refund: tuple[str, int] | None,
    ) -> UnitOutcome:
        """Refund the unit's deduction (at most once) and checkpoint the error."""
        if refund is not None:
            reference_id, amount = refund
            if not await self._ledger_write(self.ledger.has_refund(reference_id)):
                await self._ledger_write(
                    self.ledger.refund(
                        execution.organization_id,
                        amount,
                        reference_id,
                        reference_type="execution_unit",
                        description=f"Refund for failed style generation: {unit.name}",
                    )
                )

        snapshot = execution.progress_snapshot()
        execution.record_unit_error(unit.unit_id, error)
        execution.bump_stats(errors_count=1)
        execution.clear_in_flight()
        await self._checkpoint(execution, snapshot)

        log.warning("execution.unit.failed", error=error, refunded=refund is not None)
        return UnitOutcome(
            unit_id=unit.unit_id,
            unit_status="failed",
            unit_name=unit.name,
            error=error,
        )

    async def _fail_after_state_store_error(
        self, execution: Execution, error: StateStoreError, log
    ) -> None:
        """Best effort after a failed checkpoint: refund in flight, mark failed, notify."""
        log.error("execution.state_store_failed", error=str(error))

        try:
            await self._reconcile_in_flight(execution)
        except (StateStoreError, SQLAlchemyError) as e:
            log.error("execution.in_flight_refund_failed", error=str(e))

        message = f"State store failure: {error}"
        if not execution.is_terminal:
            execution.mark_failed(message, actual_cost=self._actual_cost(execution))
        try:
            await self._checkpoint(execution)
        except StateStoreError as e:
            # Left running in the store; the orphan sweep picks it up
            log.error("execution.final_checkpoint_failed", error=str(e))

        self._publish(
            execution,
            EventType.ERROR,
            error=message,
            code="state_store_error",
            summary=execution_summary(execution),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, execution_id: UUID) -> Execution:
        async with await self.uow_factory() as uow:
            execution = await uow.executions.get_by_id(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        return execution

    async def _load_unit(self, unit_id: str) -> WorkUnit | None:
        try:
            async with await self.uow_factory() as uow:
                sub_category = await uow.sub_categories.get_by_id(UUID(unit_id))
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to load work unit {unit_id}: {e}") from e
        return to_work_unit(sub_category) if sub_category is not None else None

    async def _checkpoint(
        self,
        execution: Execution,
        snapshot: dict | None = None,
        before_save: Callable[[UnitOfWork], Awaitable[None]] | None = None,
    ) -> None:
        """Save the whole execution record in one transaction.

        On failure the in-memory progress is restored from the snapshot, so the
        object keeps matching the last durable checkpoint.

        Raises:
            StateStoreError: If the transaction fails
        """
        try:
            async with await self.uow_factory() as uow:
                if before_save is not None:
                    await before_save(uow)
                await uow.executions.save(execution)
        except SQLAlchemyError as e:
            if snapshot is not None:
                execution.restore_progress(snapshot)
            raise StateStoreError(f"Failed to checkpoint execution {execution.id}: {e}") from e

    async def _ledger_write(self, call: Awaitable):
        """Await a ledger call, turning database failures into StateStoreError."""
        try:
            return await call
        except SQLAlchemyError as e:
            raise StateStoreError(f"Ledger write failed: {e}") from e

    async def _reconcile_in_flight(self, execution: Execution) -> bool:
        """Refund an in-flight usage that has no refund yet and clear the marker.

        Returns:
            True if a refund was appended
        """
        marker = execution.in_flight
        if marker is None:
            return False

        reference_id = marker["reference_id"]
        refunded = False
        usage = await self._ledger_write(self.ledger.get_usage(reference_id))
        if usage is not None and not await self._ledger_write(self.ledger.has_refund(reference_id)):
            await self._ledger_write(
                self.ledger.refund(
                    execution.organization_id,
                    usage.amount,
                    reference_id,
                    reference_type="execution_unit",
                    description="Refund for interrupted style generation",
                )
            )
            refunded = True

        execution.clear_in_flight()
        logger.info(
            "execution.in_flight_reconciled",
            execution_id=str(execution.id),
            reference_id=reference_id,
            refunded=refunded,
        )
        return refunded

    @staticmethod
    def _actual_cost(execution: Execution) -> float:
        return cost_estimator.actual_cost(execution.call_counts).total

    def _publish(self, execution: Execution, event_type: EventType, **data) -> None:
        self.streamer.publish(ProgressEvent(type=event_type, execution_id=execution.id, data=data))

    def _publish_metrics(self, execution: Execution, unit_id: str, result: UnitResult) -> None:
        self._publish(
            execution,
            EventType.METRICS,
            unit_id=unit_id,
            call_counts=result.call_counts,
            cost_delta=cost_estimator.actual_cost(result.call_counts).total,
            actual_cost=self._actual_cost(execution),
        )


def create_execution_controller(settings: Settings, uow_factory) -> ExecutionController:
    """Wire the ledger, streamer and Replicate-backed pipeline into a controller."""
    pipeline = GenerationPipeline(
        text_generator=ReplicateTextGenerator(
            settings.replicate_api_token, settings.replicate_text_model
        ),
        image_generator=ReplicateImageGenerator(
            settings.replicate_api_token, settings.replicate_image_model
        ),
        rate_limiter=RateLimiter(settings.provider_rate_per_second, settings.provider_burst),
        image_concurrency=settings.image_concurrency,
    )
    return ExecutionController(
        uow_factory=uow_factory,
        ledger=CreditLedger(uow_factory),
        pipeline=pipeline,
        streamer=ProgressStreamer(settings.stream_queue_size),
        settings=settings,
    )
