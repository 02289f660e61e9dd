from __future__ import annotations

import uuid

import pytest

pytestmark = pytest.mark.integration


def test_reminder_flow_against_running_server(api_base_url: str, call_api) -> None:
    user = f"it-{uuid.uuid4().hex[:12]}"

    create_status, reminder = call_api(
        api_base_url, "POST", "/reminders", user=user, payload={"medicineName": "Metformin"}
    )
    assert create_status == 201
    assert reminder["enabled"] is True

    toggle_status, toggled = call_api(
        api_base_url,
        "PATCH",
        f"/reminders/{reminder['id']}",
        user=user,
        payload={"enabled": False},
    )
    assert toggle_status == 200
    assert toggled["enabled"] is False

    list_status, listed = call_api(api_base_url, "GET", "/reminders", user=user)
    assert list_status == 200
    assert [item["id"] for item in listed["reminders"]] == [reminder["id"]]

    overview_status, overview = call_api(api_base_url, "GET", "/overview", user=user)
    assert overview_status == 200
    assert overview["activeReminders"] == 0
    assert overview["reportCount"] == 0


def test_missing_report_input_is_rejected_before_upstream(api_base_url: str, call_api) -> None:
    status, body = call_api(
        api_base_url, "POST", "/reports", user="it-user", payload={"name": "Empty"}
    )

    assert status == 422
    assert body["stage"] == "input"
    assert body["flow"] == "extract_medical_data"
