"""Provider contract and a JSON-over-HTTP provider."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from conductor.pipeline.errors import StageExecutionError
from conductor.pipeline.models import ErrorKind, StageSpec

if TYPE_CHECKING:
    from conductor.pipeline.context import ExecutionContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


class Provider(Protocol):
    async def invoke(
        self, stage: StageSpec, context: ExecutionContext, inputs: dict[str, Any]
    ) -> Any: ...


class HttpProvider:
    """Posts each stage to ``<base_url>/invoke`` and returns the JSON body as stage output."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def invoke(
        self, stage: StageSpec, context: ExecutionContext, inputs: dict[str, Any]
    ) -> Any:
        payload = {
            "command": context.command_name,
            "agent": context.agent_role,
            "model": context.model,
            "session_id": context.session_id,
            "stage": stage.stage,
            "prompt": stage.prompt,
            "inputs": inputs,
            "outputs": stage.outputs,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(f"{self._base_url}/invoke", json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise StageExecutionError(
                f"Provider timed out on stage {stage.stage}", ErrorKind.TIMEOUT
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            kind = ErrorKind.VALIDATION_FAILED if status == 422 else ErrorKind.ERROR
            raise StageExecutionError(
                f"Provider returned HTTP {status} on stage {stage.stage}", kind
            ) from e
        except httpx.HTTPError as e:
            raise StageExecutionError(f"Provider request failed on stage {stage.stage}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise StageExecutionError(
                f"Provider returned non-JSON output on stage {stage.stage}",
                ErrorKind.VALIDATION_FAILED,
            ) from e
        logger.debug(f"Stage {stage.stage} answered by {self._base_url}")
        return body


class DryRunProvider:
    """Answers every stage with placeholders so a pipeline can be traced without a model."""

    async def invoke(
        self, stage: StageSpec, context: ExecutionContext, inputs: dict[str, Any]
    ) -> Any:
        if stage.outputs:
            return {name: f"<{stage.stage}.{name}>" for name in stage.outputs}
        return {stage.stage: {"prompt": stage.prompt, "inputs": inputs}}
