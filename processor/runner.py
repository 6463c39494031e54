# ============================================================================
# File: processor/runner.py
# Description: Resumable, time-bounded log processing loop
# ============================================================================
"""
Logs Processor - pulls pages of logs from a source and hands them to a
consumer in batches.

This module provides the processing loop with:
- Checkpoint resumption (the cursor is loaded once and saved at most once)
- Batching decoupled from the source page size
- A wall-clock budget checked between cycles
- A bounded error policy: the first error is recorded, the second stops the run
- Errors and warnings returned in the result instead of raised
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError

from core.config import ProcessorOptions, Settings, settings as default_settings
from core.exceptions import (
    ArgumentError,
    CheckpointError,
    ConsumerCrashError,
    ConsumerError,
    FetchError,
)
from processor.accumulator import BatchAccumulator
from processor.budget import Budget
from processor.records import Record
from processor.status import (
    CheckpointState,
    ErrorAccumulator,
    LoopState,
    RunResult,
    RunStatus,
)
from sources.base import LogSource
from sources.management_api import ManagementApiLogSource
from storage.base import CheckpointStore

logger = logging.getLogger(__name__)

Consumer = Callable[[List[Record]], Union[Awaitable[None], None]]


@dataclass
class _Run:
    """Mutable state of a single run"""
    budget: Budget
    checkpoints: CheckpointState
    batch: BatchAccumulator = field(default_factory=BatchAccumulator)
    errors: ErrorAccumulator = field(default_factory=ErrorAccumulator)
    logs_processed: int = 0
    pages_fetched: int = 0
    warning: Optional[str] = None
    state: LoopState = LoopState.FETCHING


class LogsProcessor:
    """
    Log processing loop for one checkpointed stream.

    Responsibilities:
    - Resume from the stored checkpoint
    - Accumulate pages into consumer-sized batches
    - Stop on exhaustion, on the time budget, or on the second error
    - Report exactly how far the run got
    """

    def __init__(
        self,
        store: CheckpointStore,
        options: Union[ProcessorOptions, Mapping[str, Any]],
        source: Optional[LogSource] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        if store is None or not all(
            callable(getattr(store, attr, None)) for attr in ("load", "save")
        ):
            raise ArgumentError(
                "A checkpoint store providing load() and save() is required",
                context={"argument": "store"}
            )

        self.options = self._validate_options(options)

        if source is None:
            if not self.options.has_credentials:
                raise ArgumentError(
                    "domain, client_id and client_secret are required when no log source is given",
                    context={"argument": "options"}
                )
            source = ManagementApiLogSource.from_options(self.options)

        self.store = store
        self.source = source
        self._clock = clock

    @staticmethod
    def _validate_options(options) -> ProcessorOptions:
        if options is None:
            raise ArgumentError("Processor options are required", context={"argument": "options"})

        if isinstance(options, ProcessorOptions):
            return options

        if not isinstance(options, Mapping):
            raise ArgumentError(
                "Processor options must be a ProcessorOptions or a mapping",
                context={"argument": "options", "type": type(options).__name__}
            )

        try:
            return ProcessorOptions(**options)
        except ValidationError as e:
            raise ArgumentError(
                "Invalid processor options",
                context={
                    "argument": "options",
                    "errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
                },
                original_exception=e
            )

    @classmethod
    def from_settings(
        cls,
        store: CheckpointStore,
        app_settings: Optional[Settings] = None,
        source: Optional[LogSource] = None
    ) -> "LogsProcessor":
        """Build a processor from environment settings"""
        try:
            options = ProcessorOptions.from_settings(app_settings or default_settings)
        except ValidationError as e:
            raise ArgumentError(
                "Invalid processor settings",
                context={"argument": "settings"},
                original_exception=e
            )
        return cls(store, options, source=source)

    async def run(self, consumer: Consumer) -> RunResult:
        """
        Run the processing loop until the source is exhausted, the time
        budget runs out, or the error policy stops it.

        Args:
            consumer: Called once per batch with the list of records. Raise
                ConsumerError to report that the batch could not be processed;
                any other exception is treated as a crash and stops the run.

        Returns:
            RunResult with the run status, the committed checkpoint and the
            terminal loop state

        Raises:
            ArgumentError: If ``consumer`` is not callable. Nothing else is
                raised once the loop has started.
        """
        if not callable(consumer):
            raise ArgumentError("consumer must be callable", context={"argument": "consumer"})

        budget = Budget(self.options.max_run_time_seconds, clock=self._clock)
        budget.start()

        # --------------------------------------------------
        # LOAD CHECKPOINT
        # --------------------------------------------------
        try:
            start_position = await self.store.load()
        except Exception as e:
            error = e if isinstance(e, CheckpointError) else CheckpointError(
                "Failed to load checkpoint",
                context={"operation": "load"},
                original_exception=e
            )
            logger.error(f"Could not load checkpoint: {error}")
            run = _Run(budget=budget, checkpoints=CheckpointState())
            run.errors.add(error)
            run.state = LoopState.STOPPED_ERROR
            return await self._finish(run)

        if start_position is None:
            start_position = self.options.start_from
        else:
            start_position = str(start_position)

        run = _Run(budget=budget, checkpoints=CheckpointState(start_position))
        logger.info(
            f"Starting logs processor for {self.source.name} "
            f"(checkpoint: {start_position}, budget: {self.options.max_run_time_seconds}s)"
        )

        # --------------------------------------------------
        # FETCH / DELIVER CYCLES
        # --------------------------------------------------
        while not run.state.is_terminal:
            if run.budget.exhausted:
                logger.info(
                    f"Time limit of {self.options.max_run_time_seconds}s reached "
                    f"after {run.pages_fetched} pages"
                )
                await self._deliver(run, consumer)
                self._stop(run)
                break

            run.checkpoints.abandon_pending()
            cursor = run.checkpoints.last_fetched_position
            run.state = LoopState.FETCHING

            try:
                page = await self.source.fetch_page(cursor, self.options.page_size)
            except FetchError as e:
                await self._on_fetch_error(run, consumer, e)
                break
            except Exception as e:
                await self._on_fetch_error(run, consumer, FetchError(
                    "Unexpected error while fetching logs",
                    context={"cursor": cursor, "page_size": self.options.page_size},
                    original_exception=e
                ))
                break

            run.pages_fetched += 1

            if page.outdated and run.warning is None:
                run.warning = (
                    f"Logs from {self.source.name} are outdated: some logs after checkpoint "
                    f"{cursor} may no longer be available at the source"
                )
                logger.warning(run.warning)

            if page.is_exhausted:
                logger.debug(f"No more logs after {cursor}")
                await self._deliver(run, consumer)
                self._stop(run)
                break

            run.batch.append(page.records)
            run.checkpoints.record_fetch(page.last_position)
            logger.debug(
                f"Fetched {len(page)} logs after {cursor} "
                f"(buffered: {len(run.batch)}/{self.options.batch_size})"
            )

            if run.batch.is_full(self.options.batch_size):
                await self._deliver(run, consumer)

        return await self._finish(run)

    async def _on_fetch_error(self, run: _Run, consumer: Consumer, error: FetchError) -> None:
        logger.error(
            f"Failed to fetch logs: {error.message}",
            extra={"error_context": error.to_dict()}
        )
        if not run.errors.add(error):
            # First error: the records already read still go to the consumer
            await self._deliver(run, consumer)
        run.state = LoopState.STOPPED_ERROR

    async def _deliver(self, run: _Run, consumer: Consumer) -> None:
        """Flush the accumulated batch to the consumer and await it"""
        records = run.batch.flush()
        if not records:
            run.checkpoints.commit_filtered()
            return

        boundary = run.checkpoints.mark_flushed()
        run.state = LoopState.DELIVERING
        logger.debug(f"Delivering batch of {len(records)} logs (up to {boundary})")

        try:
            outcome = consumer(records)
            if inspect.isawaitable(outcome):
                await outcome
        except ConsumerError as e:
            logger.error(
                f"Consumer rejected batch of {len(records)} logs: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            run.state = LoopState.STOPPED_ERROR if run.errors.add(e) else LoopState.FETCHING
            return
        except Exception as e:
            crash = ConsumerCrashError(
                "Consumer crashed while processing batch",
                context={"batch_size": len(records), "checkpoint": boundary},
                original_exception=e
            )
            logger.exception(f"Consumer crashed on batch of {len(records)} logs")
            run.errors.add(crash)
            run.state = LoopState.STOPPED_ERROR
            return

        run.logs_processed += len(records)
        run.checkpoints.commit(boundary)
        run.state = LoopState.FETCHING

    @staticmethod
    def _stop(run: _Run) -> None:
        if not run.state.is_terminal:
            run.state = LoopState.STOPPED_ERROR if run.errors else LoopState.STOPPED_SUCCESS

    async def _finish(self, run: _Run) -> RunResult:
        """Persist the committed checkpoint and build the result"""
        checkpoint = run.checkpoints.last_committed_position
        checkpoint_error = None

        # Pages filtered down to nothing still move the stored cursor
        persist = run.logs_processed > 0 or run.checkpoints.filtered_advance
        if persist and checkpoint is not None:
            try:
                await self.store.save(checkpoint, run.logs_processed)
            except Exception as e:
                checkpoint_error = e if isinstance(e, CheckpointError) else CheckpointError(
                    "Failed to save checkpoint",
                    context={"checkpoint_value": checkpoint, "operation": "save"},
                    original_exception=e
                )
                logger.error(f"Could not save checkpoint {checkpoint}: {checkpoint_error}")

        status = RunStatus(
            logs_processed=run.logs_processed,
            errors=run.errors.errors,
            warning=run.warning,
            checkpoint_error=checkpoint_error,
        )
        result = RunResult(status=status, checkpoint=checkpoint, state=run.state)

        logger.info(
            f"Logs processor finished: {run.state.value} - "
            f"Processed: {run.logs_processed}, Pages: {run.pages_fetched}, "
            f"Errors: {len(run.errors)}, Checkpoint: {checkpoint}, "
            f"Elapsed: {run.budget.elapsed:.2f}s"
        )
        return result
