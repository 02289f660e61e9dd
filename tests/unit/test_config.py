import json
import logging

import pytest

from medireport.config.logging import JsonFormatter, configure_logging
from medireport.config.settings import Settings


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("MEDIREPORT_LLM_MODEL", "gpt-test")
    monkeypatch.setenv("MEDIREPORT_RETRY_MAX_ATTEMPTS", "5")

    settings = Settings(_env_file=None)

    assert settings.llm_model == "gpt-test"
    assert settings.retry_max_attempts == 5
    assert settings.app_name == "MediReportAI"


def test_settings_fall_back_to_shared_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-shared")
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/medireport")
    monkeypatch.setenv("MAPMYINDIA_CLIENT_ID", "legacy-id")
    monkeypatch.setenv("MAPMYINDIA_CLIENT_SECRET", "legacy-secret")

    settings = Settings(_env_file=None, prescriptions_api_key="sk-rx")

    assert settings.resolved_reports_api_key() == "sk-shared"
    assert settings.resolved_prescriptions_api_key() == "sk-rx"
    assert settings.resolved_database_url() == "postgresql://db/medireport"
    assert settings.resolved_mappls_credentials() == ("legacy-id", "legacy-secret")


def test_settings_reject_invalid_retry_policy() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, retry_max_attempts=0)


def test_json_formatter_emits_one_object_per_record() -> None:
    record = logging.LogRecord(
        name="medireport.flows.base",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="flow event=failed flow=%s",
        args=("extract_medical_data",),
        exc_info=None,
    )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "medireport.flows.base"
    assert payload["message"] == "flow event=failed flow=extract_medical_data"
    assert payload["timestamp"].endswith("+00:00")


def test_configure_logging_installs_single_stdout_handler(restore_root_logger) -> None:
    configure_logging("debug", json_format=True)

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING
