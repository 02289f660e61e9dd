"""Flow composition: validate input, call upstream once with retry, validate output."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from medireport.flows.clients import LLMClient, UserPart
from medireport.flows.errors import MediReportError, UpstreamRejectedError, failure_kind
from medireport.flows.retry import RetryPolicy, Sleeper, invoke
from medireport.flows.schemas import validate

TIn = TypeVar("TIn", bound=BaseModel)
TOut = TypeVar("TOut", bound=BaseModel)
logger = logging.getLogger(__name__)


class Flow(Generic[TIn, TOut]):
    """One unit of work against an external service.

    Steps run strictly in order: input validation, request building, a single
    retried upstream call, output validation. Input errors are raised before
    any network call. Persistence is not part of a flow.
    """

    name: ClassVar[str] = "flow"
    input_schema: ClassVar[type[BaseModel]]
    output_schema: ClassVar[type[BaseModel]]

    def __init__(self, *, policy: RetryPolicy, sleep: Sleeper = asyncio.sleep) -> None:
        self.policy = policy
        self._sleep = sleep

    async def run(self, payload: TIn | dict[str, Any]) -> TOut:
        started_at = time.perf_counter()
        request = validate(self.input_schema, payload, stage="input", flow=self.name)
        logger.info("flow event=start flow=%s", self.name)
        try:
            raw = await invoke(
                lambda: self._call(request),
                self.policy,
                sleep=self._sleep,
                label=self.name,
            )
            output = validate(self.output_schema, raw, stage="output", flow=self.name)
            result = self._finalize(request, output)
        except MediReportError as exc:
            exc.with_flow(self.name)
            _log_failure(self.name, exc, started_at)
            raise
        except Exception as exc:
            rejected = UpstreamRejectedError(f"upstream call failed: {exc}", flow=self.name)
            _log_failure(self.name, rejected, started_at)
            raise rejected from exc
        logger.info(
            "flow event=completed flow=%s duration_ms=%.2f",
            self.name,
            _duration_ms(started_at),
        )
        return result

    async def _call(self, request: TIn) -> dict[str, Any]:
        raise NotImplementedError

    def _finalize(self, request: TIn, output: TOut) -> TOut:
        return output


class LLMFlow(Flow[TIn, TOut]):
    """Flow whose upstream call is a structured LLM completion."""

    system_prompt: ClassVar[str] = ""

    def __init__(
        self,
        *,
        client: LLMClient,
        policy: RetryPolicy,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(policy=policy, sleep=sleep)
        self.client = client

    async def _call(self, request: TIn) -> dict[str, Any]:
        return await self.client.generate_json(
            system_prompt=self.system_prompt,
            user_parts=self._user_parts(request),
            response_schema=self.output_schema.model_json_schema(by_alias=True),
            schema_name=self.name,
        )

    def _user_parts(self, request: TIn) -> list[UserPart]:
        raise NotImplementedError


def _log_failure(flow: str, exc: MediReportError, started_at: float) -> None:
    logger.warning(
        "flow event=failed flow=%s kind=%s stage=%s error_type=%s duration_ms=%.2f",
        flow,
        failure_kind(exc),
        exc.stage,
        type(exc).__name__,
        _duration_ms(started_at),
    )


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
