"""Pipeline execution engine: runs a command's stages against its provider.

Sequential pipelines run stage by stage and halt on the first required
failure. Parallel pipelines run in dependency waves; a wave's branches run
concurrently and only successful branches are merged into the output map.
Stage failures never raise: they come back as a failed CommandResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from conductor.pipeline.cache import CacheStore, command_cache_key, stage_cache_key
from conductor.pipeline.context import ExecutionContext
from conductor.pipeline.errors import StageExecutionError
from conductor.pipeline.models import (
    CacheStrategy,
    CommandDefinition,
    CommandResult,
    ErrorKind,
    MergeStrategy,
    RetryPolicy,
    StageOutput,
    StageSpec,
    StageState,
)
from conductor.pipeline.scheduler import build_waves, validate_pipeline

logger = logging.getLogger(__name__)

StageListener = Callable[[str, StageState], None]


class PipelineEngine:
    def __init__(
        self,
        cache: CacheStore | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        listener: StageListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache = cache
        self._sleep = sleep
        self._listener = listener
        self._clock = clock

    async def run(
        self,
        command: CommandDefinition,
        context: ExecutionContext,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> CommandResult:
        """Execute the command pipeline. ``deadline`` is on the engine clock (monotonic).

        Cancellation defaults to the context's ``cancel_event`` and ``deadline``.
        """
        if cancel_event is None:
            cancel_event = context.cancel_event
        if deadline is None:
            deadline = context.deadline
        started = self._clock()
        prompts = command.prompts
        stages = prompts.pipeline

        problems = validate_pipeline(stages)
        if problems:
            logger.warning(f"Pipeline for {command.name} rejected: {'; '.join(problems)}")
            return self._result(
                command,
                context,
                started,
                outputs={},
                stages=[],
                error="; ".join(problems),
                error_kind=ErrorKind.VALIDATION_FAILED,
            )

        cache_key: str | None = None
        if prompts.cache_strategy == CacheStrategy.COMMAND and self._cache is not None:
            cache_key = command_cache_key(command.name, context.args, context.flags)
            hit = await self._cache_get(cache_key)
            if hit is not None:
                logger.info(f"Command cache hit for {command.name}")
                return self._result(command, context, started, outputs=hit, stages=[], cached=True)

        def cancelled() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return True
            return deadline is not None and self._clock() >= deadline

        if prompts.merge_strategy == MergeStrategy.PARALLEL:
            waves = build_waves(stages)
        else:
            waves = [[stage] for stage in stages]

        outputs: dict[str, Any] = {}
        results: list[StageOutput] = []
        failure: StageOutput | None = None
        for wave in waves:
            if len(wave) == 1:
                wave_results = [await self._run_stage(wave[0], command, context, cancelled)]
            else:
                wave_results = await asyncio.gather(
                    *(self._run_stage(s, command, context, cancelled) for s in wave)
                )
            for stage, output in zip(wave, wave_results, strict=True):
                results.append(output)
                if output.success:
                    outputs.update(output.outputs)
                    context.record_stage(stage.stage, output.outputs)
                    self._emit(stage.stage, StageState.AGGREGATED)
                elif stage.required or output.error_kind == ErrorKind.CANCELLED:
                    if failure is None:
                        failure = output
                else:
                    logger.warning(f"Optional stage {stage.stage} failed: {output.error}")
            if failure is not None:
                break

        if failure is not None:
            return self._result(
                command,
                context,
                started,
                outputs=outputs,
                stages=results,
                error=f"Stage {failure.stage} failed: {failure.error}",
                error_kind=failure.error_kind,
            )

        if cache_key is not None:
            await self._cache_set(cache_key, outputs)
        return self._result(command, context, started, outputs=outputs, stages=results)

    # -- Stages -------------------------------------------------------------

    async def _run_stage(
        self,
        stage: StageSpec,
        command: CommandDefinition,
        context: ExecutionContext,
        cancelled: Callable[[], bool],
    ) -> StageOutput:
        started = self._clock()
        policy: RetryPolicy = command.prompts.retry_policy
        self._emit(stage.stage, StageState.PENDING)
        if cancelled():
            return self._failed(stage, started, 0, "Cancelled before start", ErrorKind.CANCELLED)

        inputs = context.resolve_inputs(stage)
        cache_key: str | None = None
        if command.prompts.cache_strategy == CacheStrategy.STAGE and self._cache is not None:
            cache_key = stage_cache_key(command.name, stage.stage, inputs)
            hit = await self._cache_get(cache_key)
            if hit is not None:
                logger.debug(f"Stage cache hit for {command.name}:{stage.stage}")
                self._emit(stage.stage, StageState.SUCCEEDED)
                return StageOutput(
                    stage=stage.stage,
                    prompt=stage.prompt,
                    state=StageState.SUCCEEDED,
                    outputs=hit,
                    duration_ms=self._elapsed_ms(started),
                    cached=True,
                )

        attempt = 0
        while True:
            attempt += 1
            self._emit(stage.stage, StageState.RUNNING if attempt == 1 else StageState.RETRYING)
            try:
                raw = await self._invoke(stage, context, inputs)
            except StageExecutionError as e:
                kind, error = e.kind, str(e)
            except TimeoutError:
                kind = ErrorKind.TIMEOUT
                error = f"Stage {stage.stage} exceeded {stage.timeout_ms}ms"
            except Exception as e:
                kind, error = ErrorKind.ERROR, f"{type(e).__name__}: {e}"
            else:
                stage_outputs = raw if isinstance(raw, dict) else {stage.stage: raw}
                if cache_key is not None:
                    await self._cache_set(cache_key, stage_outputs)
                self._emit(stage.stage, StageState.SUCCEEDED)
                return StageOutput(
                    stage=stage.stage,
                    prompt=stage.prompt,
                    state=StageState.SUCCEEDED,
                    outputs=stage_outputs,
                    attempts=attempt,
                    duration_ms=self._elapsed_ms(started),
                )

            if not policy.should_retry(kind, attempt):
                return self._failed(stage, started, attempt, error, kind)
            logger.info(
                f"Retrying stage {stage.stage} after {kind} "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            if policy.backoff_ms > 0:
                await self._sleep(policy.backoff_ms / 1000)
            if cancelled():
                return self._failed(
                    stage, started, attempt, "Cancelled between attempts", ErrorKind.CANCELLED
                )

    async def _invoke(
        self, stage: StageSpec, context: ExecutionContext, inputs: dict[str, Any]
    ) -> Any:
        call = context.provider.invoke(stage, context, inputs)
        if stage.timeout_ms is None:
            return await call
        return await asyncio.wait_for(call, timeout=stage.timeout_ms / 1000)

    def _failed(
        self, stage: StageSpec, started: float, attempts: int, error: str, kind: ErrorKind
    ) -> StageOutput:
        logger.warning(f"Stage {stage.stage} failed ({kind}) after {attempts} attempt(s): {error}")
        self._emit(stage.stage, StageState.FAILED)
        return StageOutput(
            stage=stage.stage,
            prompt=stage.prompt,
            state=StageState.FAILED,
            attempts=attempts,
            duration_ms=self._elapsed_ms(started),
            error=error,
            error_kind=kind,
        )

    # -- Helpers ------------------------------------------------------------

    async def _cache_get(self, key: str) -> dict[str, Any] | None:
        """Cache lookup; a failing store counts as a miss."""
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed, treating as miss: {e}")
            return None

    async def _cache_set(self, key: str, value: dict[str, Any]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, value)
        except Exception as e:
            logger.warning(f"Cache write failed, result not cached: {e}")

    def _emit(self, stage_id: str, state: StageState) -> None:
        if self._listener is not None:
            self._listener(stage_id, state)

    def _elapsed_ms(self, started: float) -> float:
        return (self._clock() - started) * 1000

    def _result(
        self,
        command: CommandDefinition,
        context: ExecutionContext,
        started: float,
        *,
        outputs: dict[str, Any],
        stages: list[StageOutput],
        error: str | None = None,
        error_kind: ErrorKind | None = None,
        cached: bool = False,
    ) -> CommandResult:
        return CommandResult(
            command=command.name,
            agent=context.agent_role,
            args=context.args,
            flags=context.flags,
            model=context.model or command.model,
            session_id=context.session_id,
            duration_ms=self._elapsed_ms(started),
            outputs=outputs,
            success=error is None,
            error=error,
            error_kind=error_kind,
            stages=stages,
            cached=cached,
        )
