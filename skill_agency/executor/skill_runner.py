"""Single-skill execution: validation, dry runs and streamed step progress.

A live execution is a lazy sequence of events:

1. one `started` event
2. one `step_progress` event per step, in declared order, emitted before the
   step is handed to the StepRunner
3. exactly one terminal event: `complete`, or `error` if a step fails,
   raises, or exceeds the step timeout

Progress for step i (0-based) of n is floor(100*i/n) + floor(50/n), the
mid-step percentage clients already render.

Cancellation is checked before every step. When it is set, or when the
consumer closes the iterator, no further events are produced and the
execution record is marked cancelled.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional

from skill_agency.errors import ExecutionError, ValidationError
from skill_agency.skills.schemas import DryRunResult, SkillDefinition, StepSpec
from skill_agency.skills.validation import (
    dry_run,
    resolve_parameters,
    validate_parameters,
)

from .execution_log import ExecutionLog
from .schemas import (
    ErrorEvent,
    ExecutionCompleteEvent,
    ExecutionRecord,
    ExecutionStatus,
    ProgressEvent,
    StartedEvent,
    StepProgressEvent,
    new_id,
)
from .step_runner import StepContext, StepResult, StepRunner

logger = logging.getLogger(__name__)


def step_progress(index: int, total: int) -> int:
    """Percentage reported while step `index` (0-based) of `total` runs."""
    return (100 * index) // total + 50 // total


class SkillExecutor:
    """Runs one skill's steps through a StepRunner, emitting progress events."""

    def __init__(
        self,
        step_runner: StepRunner,
        execution_log: ExecutionLog,
        output_dir: Path,
        step_timeout: Optional[float] = None,
        step_delay: float = 0.0,
        critical_step_delay: float = 0.0,
    ):
        self.step_runner = step_runner
        self.execution_log = execution_log
        self.output_dir = output_dir
        self.step_timeout = step_timeout
        # Only used for dry-run time estimates
        self.step_delay = step_delay
        self.critical_step_delay = critical_step_delay

    def validate(self, skill: SkillDefinition, parameters: Mapping[str, Any]) -> list[str]:
        """All parameter violations, with declared defaults applied first."""
        return validate_parameters(skill, resolve_parameters(skill, parameters))

    def dry_run(self, skill: SkillDefinition, parameters: Mapping[str, Any]) -> DryRunResult:
        return dry_run(skill, parameters, self.step_delay, self.critical_step_delay)

    def execute(
        self,
        skill: SkillDefinition,
        parameters: Mapping[str, Any],
        *,
        cancellation_check: Optional[Callable[[], bool]] = None,
        session_id: Optional[str] = None,
        level: Optional[str] = None,
        persona: Optional[str] = None,
        strict: bool = True,
        execution_id: Optional[str] = None,
    ) -> Iterator[ProgressEvent]:
        """Validate, record and return the lazy event stream of a run.

        Validation happens here, before any event exists. With strict=False
        (workflow orchestration, where parameters come from defaults and
        decisions rather than a user form) violations are logged instead.

        Raises:
            ValidationError: strict validation failed; nothing was started.
        """
        resolved = resolve_parameters(skill, parameters)
        errors = validate_parameters(skill, resolved)
        if errors:
            if strict:
                raise ValidationError(errors)
            logger.warning(
                f"Skill {skill.id} running with unchecked parameters: {errors}"
            )

        record = self.execution_log.add(
            ExecutionRecord(
                execution_id=execution_id or new_id("exec"),
                skill_id=skill.id,
                session_id=session_id,
                parameters=resolved,
            )
        )
        base_dir = self.output_dir / session_id if session_id else self.output_dir
        context = StepContext(
            execution_id=record.execution_id,
            skill=skill,
            parameters=resolved,
            step_index=0,
            total_steps=len(skill.steps),
            output_dir=base_dir / skill.id / record.execution_id,
            session_id=session_id,
            level=level,
            persona=persona,
        )
        return self._run(skill, context, cancellation_check)

    def _run(
        self,
        skill: SkillDefinition,
        context: StepContext,
        cancellation_check: Optional[Callable[[], bool]],
    ) -> Iterator[ProgressEvent]:
        execution_id = context.execution_id
        total = len(skill.steps)
        start_time = time.monotonic()
        files: list[str] = []
        outputs: dict[str, Any] = {"level": context.level, "persona": context.persona}
        finished = False

        def cancelled() -> bool:
            return bool(cancellation_check and cancellation_check())

        self.execution_log.transition(execution_id, ExecutionStatus.IN_PROGRESS)
        logger.info(f"[{execution_id}] Starting skill {skill.id} ({total} steps)")

        try:
            yield StartedEvent(
                execution_id=execution_id,
                skill_name=skill.name,
                total_steps=total,
                parameters=context.parameters,
            )

            for index, step in enumerate(skill.steps):
                if cancelled():
                    logger.info(f"[{execution_id}] Cancelled before step {index + 1}/{total}")
                    finished = True
                    self.execution_log.transition(execution_id, ExecutionStatus.CANCELLED)
                    return

                yield StepProgressEvent(
                    step_index=index,
                    step_name=step.name,
                    step_id=step.id,
                    critical=step.critical,
                    progress=step_progress(index, total),
                )

                try:
                    result = self._run_step(step, replace(context, step_index=index))
                    if not result.success:
                        raise ExecutionError(
                            f"Step '{step.name}' failed: {result.error or 'no details'}"
                        )
                except Exception as e:
                    message = e.message if isinstance(e, ExecutionError) else (
                        f"Step '{step.name}' failed: {e}"
                    )
                    logger.error(f"[{execution_id}] {message}", exc_info=True)
                    finished = True
                    self.execution_log.transition(
                        execution_id,
                        ExecutionStatus.FAILED,
                        error=message,
                        duration_ms=int((time.monotonic() - start_time) * 1000),
                    )
                    yield ErrorEvent(error=message, execution_id=execution_id)
                    return

                files.extend(result.files)
                outputs.update(result.outputs)

            if cancelled():
                logger.info(f"[{execution_id}] Cancelled after final step")
                finished = True
                self.execution_log.transition(execution_id, ExecutionStatus.CANCELLED)
                return

            elapsed = time.monotonic() - start_time
            rollback_token = new_id("rb")
            outputs["files"] = files
            finished = True
            self.execution_log.transition(
                execution_id,
                ExecutionStatus.COMPLETED,
                duration_ms=int(elapsed * 1000),
                outputs=outputs,
            )
            self.execution_log.set_rollback_token(execution_id, rollback_token)
            logger.info(
                f"[{execution_id}] Skill {skill.id} completed: "
                f"{len(files)} files in {elapsed:.2f}s"
            )
            yield ExecutionCompleteEvent(
                execution_id=execution_id,
                total_steps=total,
                duration=f"{elapsed:.1f}s",
                files_created=len(files),
                output_directory=str(context.output_dir),
                rollback_token=rollback_token,
            )
        finally:
            if not finished:
                # Consumer closed the stream mid-run
                logger.info(f"[{execution_id}] Consumer stopped reading, cancelling")
                self.execution_log.transition(execution_id, ExecutionStatus.CANCELLED)

    def _run_step(self, step: StepSpec, context: StepContext) -> StepResult:
        """Run one step, bounded by the step timeout when configured.

        A timed-out step is abandoned, not interrupted: the runner thread
        is left to finish on its own.
        """
        if self.step_timeout is None:
            return self.step_runner.run(step, context)

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"step-{step.id}")
        try:
            future = pool.submit(self.step_runner.run, step, context)
            try:
                return future.result(timeout=self.step_timeout)
            except FutureTimeout:
                raise ExecutionError(
                    f"Step '{step.name}' timed out after {self.step_timeout}s"
                )
        finally:
            pool.shutdown(wait=False)
