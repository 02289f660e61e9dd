from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from medireport.dashboard import DashboardService
from medireport.flows.clients import ClientBundle, UserPart
from medireport.flows.registry import FlowSet, build_flows
from medireport.flows.retry import RetryPolicy
from medireport.storage.memory import InMemoryRecordStore


class FakeLLMClient:
    """Scripted LLM handle keyed by schema name.

    Each script entry is a dict (returned) or an exception (raised). The last
    entry of a script is reused once the earlier ones are consumed.
    """

    def __init__(self, script: dict[str, list[Any]] | None = None) -> None:
        self.script: dict[str, list[Any]] = script or {}
        self.calls: list[dict[str, Any]] = []

    async def generate_json(
        self,
        *,
        system_prompt: str,
        user_parts: list[UserPart],
        response_schema: dict[str, Any],
        schema_name: str,
    ) -> dict[str, Any]:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_parts": list(user_parts),
                "response_schema": response_schema,
                "schema_name": schema_name,
            }
        )
        entries = self.script.get(schema_name)
        if not entries:
            raise AssertionError(f"no scripted response for {schema_name}")
        entry = entries.pop(0) if len(entries) > 1 else entries[0]
        if isinstance(entry, BaseException):
            raise entry
        return entry

    def count(self, schema_name: str) -> int:
        return sum(1 for call in self.calls if call["schema_name"] == schema_name)


class FakePlacesClient:
    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses: list[Any] = responses or [{"suggestedLocations": []}]
        self.calls: list[dict[str, Any]] = []

    async def search_nearby(
        self, *, latitude: float, longitude: float, keyword: str
    ) -> dict[str, Any]:
        self.calls.append({"latitude": latitude, "longitude": longitude, "keyword": keyword})
        entry = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(entry, BaseException):
            raise entry
        return entry


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TickingClock:
    """Returns a strictly increasing UTC timestamp on every call."""

    def __init__(
        self, start: datetime | None = None, step: timedelta = timedelta(minutes=1)
    ) -> None:
        self.current = start or datetime(2026, 1, 1, 9, 0, tzinfo=UTC)
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_ms=1000, backoff_multiplier=2.0)


@pytest.fixture
def reports_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def prescriptions_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def chat_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def places() -> FakePlacesClient:
    return FakePlacesClient()


@pytest.fixture
def clients(
    reports_llm: FakeLLMClient,
    prescriptions_llm: FakeLLMClient,
    chat_llm: FakeLLMClient,
    places: FakePlacesClient,
) -> ClientBundle:
    return ClientBundle(
        reports=reports_llm,
        prescriptions=prescriptions_llm,
        chat=chat_llm,
        places=places,
    )


@pytest.fixture
def flows(clients: ClientBundle, policy: RetryPolicy, sleeper: SleepRecorder) -> FlowSet:
    return build_flows(clients, policy, sleep=sleeper)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore(clock=TickingClock())


@pytest.fixture
def service(store: InMemoryRecordStore, flows: FlowSet) -> DashboardService:
    return DashboardService(store=store, flows=flows, clock=TickingClock())


@pytest.fixture
def extraction_response() -> dict[str, Any]:
    return {
        "extractedValues": [
            {
                "test": "Hemoglobin A1c",
                "value": 5.9,
                "unit": "%",
                "referenceRange": {"low": 4.0, "high": 5.6},
                "status": "abnormal",
            },
            {"test": "LDL Cholesterol", "value": 96, "unit": "mg/dL", "status": "normal"},
        ]
    }


@pytest.fixture
def decision_support_response() -> dict[str, Any]:
    return {
        "suggestedFollowUps": [
            {"test": "Fasting glucose", "reason": "A1c above range", "priority": "medium"}
        ],
        "riskSummary": [
            {"condition": "Prediabetes", "confidence": "moderate", "note": "A1c 5.9%"}
        ],
        "patientExplanation": "Your average blood sugar is slightly above the normal range.",
    }


@pytest.fixture
def prescription_response() -> dict[str, Any]:
    return {
        "medicines": [
            {"name": "Metformin", "dosage": "500 mg", "frequency": "twice daily", "route": "oral"},
            {"name": "Aspirin", "dosage": "75 mg", "frequency": "daily", "route": "oral"},
        ],
        "interactions": [
            {
                "drugA": "Metformin",
                "drugB": "Aspirin",
                "severity": "low",
                "message": "Monitor blood glucose.",
            }
        ],
    }
