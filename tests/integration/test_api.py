import pytest
from fastapi.testclient import TestClient

from medireport.api.main import create_app
from medireport.config.settings import Settings
from medireport.flows.clients import ClientBundle
from medireport.flows.errors import PersistenceError, UpstreamRejectedError
from medireport.storage import InMemoryRecordStore

pytestmark = pytest.mark.integration

HEADERS = {"X-User-Id": "patient-1"}


@pytest.fixture
def client(store, flows) -> TestClient:
    app = create_app(
        store=store,
        flows=flows,
        settings_override=Settings(_env_file=None, retry_base_delay_ms=1000),
    )
    return TestClient(app)


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "MediReportAI"}


def test_requests_without_user_are_unauthorized(client: TestClient) -> None:
    assert client.get("/reports").status_code == 401
    assert client.get("/").status_code == 401


def test_report_upload_list_get_and_view(
    client: TestClient, reports_llm, extraction_response, decision_support_response
) -> None:
    reports_llm.script["extract_medical_data"] = [extraction_response]
    reports_llm.script["provide_decision_support"] = [decision_support_response]

    created = client.post(
        "/reports",
        json={"name": "Annual Bloodwork", "reportText": "Hemoglobin A1c 5.9%"},
        headers=HEADERS,
    )

    assert created.status_code == 201
    report = created.json()
    assert report["extractedValues"][0]["test"] == "Hemoglobin A1c"

    listed = client.get("/reports", headers=HEADERS).json()["reports"]
    assert [item["id"] for item in listed] == [report["id"]]

    fetched = client.get(f"/reports/{report['id']}", headers=HEADERS)
    assert fetched.status_code == 200
    assert fetched.json()["patientExplanation"] == decision_support_response["patientExplanation"]

    other_user = client.get(f"/reports/{report['id']}", headers={"X-User-Id": "patient-2"})
    assert other_user.status_code == 404

    page = client.get(f"/reports/{report['id']}/view", params={"user": "patient-1"})
    assert page.status_code == 200
    assert "Annual Bloodwork" in page.text
    assert "Prediabetes" in page.text

    dashboard = client.get("/", params={"user": "patient-1"})
    assert dashboard.status_code == 200
    assert "1 abnormal" in dashboard.text


def test_missing_report_payload_is_422_without_upstream_call(
    client: TestClient, reports_llm
) -> None:
    response = client.post("/reports", json={"name": "Empty"}, headers=HEADERS)

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "invalid_input"
    assert body["stage"] == "input"
    assert body["flow"] == "extract_medical_data"
    assert body["issues"]
    assert reports_llm.calls == []


def test_unsupported_upload_format_message(client: TestClient) -> None:
    response = client.post(
        "/reports",
        json={"name": "Scan", "reportDataUri": "data:application/zip;base64,UEsDBA=="},
        headers=HEADERS,
    )

    assert response.status_code == 422
    assert "format is not supported" in response.json()["message"]


def test_exhausted_upstream_is_503_with_retry_after(
    client: TestClient, reports_llm, sleeper
) -> None:
    reports_llm.script["extract_medical_data"] = [Exception("503 Service Unavailable")]

    response = client.post(
        "/reports", json={"name": "Bloodwork", "reportText": "A1c 5.9%"}, headers=HEADERS
    )

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "4"
    assert response.json()["error"] == "temporary"
    assert len(sleeper.delays) == 2
    assert client.get("/reports", headers=HEADERS).json()["reports"] == []


def test_rejected_upstream_is_502_configuration(client: TestClient, prescriptions_llm) -> None:
    prescriptions_llm.script["analyze_prescription"] = [
        UpstreamRejectedError("invalid api key", status_code=401)
    ]

    response = client.post(
        "/prescriptions", json={"name": "Rx", "prescriptionText": "Metformin"}, headers=HEADERS
    )

    assert response.status_code == 502
    assert response.json()["error"] == "configuration"


def test_malformed_upstream_output_is_502(client: TestClient, reports_llm) -> None:
    reports_llm.script["extract_medical_data"] = [{"extractedValues": "not-an-array"}]

    response = client.post(
        "/reports", json={"name": "Bloodwork", "reportText": "A1c 5.9%"}, headers=HEADERS
    )

    assert response.status_code == 502
    body = response.json()
    assert body["stage"] == "output"
    assert [issue["field"] for issue in body["issues"]] == ["extractedValues"]


def test_prescription_upload_and_list(
    client: TestClient, prescriptions_llm, prescription_response
) -> None:
    prescriptions_llm.script["analyze_prescription"] = [prescription_response]

    created = client.post(
        "/prescriptions",
        json={"name": "Dr. Rao", "prescriptionText": "Metformin 500mg BID"},
        headers=HEADERS,
    )

    assert created.status_code == 201
    prescription_id = created.json()["id"]
    assert client.get(f"/prescriptions/{prescription_id}", headers=HEADERS).status_code == 200
    assert client.get("/prescriptions/missing", headers=HEADERS).status_code == 404
    listed = client.get("/prescriptions", headers=HEADERS).json()["prescriptions"]
    assert listed[0]["interactions"][0]["severity"] == "low"


def test_reminder_lifecycle(client: TestClient) -> None:
    created = client.post("/reminders", json={"medicineName": "Metformin"}, headers=HEADERS)

    assert created.status_code == 201
    reminder_id = created.json()["id"]

    toggled = client.patch(f"/reminders/{reminder_id}", json={"enabled": False}, headers=HEADERS)
    assert toggled.status_code == 200
    assert toggled.json()["enabled"] is False

    listed = client.get("/reminders", headers=HEADERS).json()["reminders"]
    assert listed[0]["enabled"] is False

    missing = client.patch("/reminders/missing", json={"enabled": True}, headers=HEADERS)
    assert missing.status_code == 404
    not_bool = client.patch(
        f"/reminders/{reminder_id}", json={"enabled": "yes"}, headers=HEADERS
    )
    assert not_bool.status_code == 422


def test_chat_and_assistant(client: TestClient, chat_llm) -> None:
    chat_llm.script["chat_with_ai"] = [{"reply": "Hello from chat"}]
    chat_llm.script["assistant"] = [{"reply": "Hello from MediBot"}]
    messages = {"messages": [{"role": "user", "content": "Hi"}]}

    chat = client.post("/chat", json=messages, headers=HEADERS)
    assistant = client.post("/assistant", json=messages, headers=HEADERS)

    assert chat.json() == {"reply": "Hello from chat"}
    assert assistant.json() == {"reply": "Hello from MediBot"}


def test_chat_requires_a_user_message(client: TestClient, chat_llm) -> None:
    response = client.post("/chat", json={"messages": []}, headers=HEADERS)

    assert response.status_code == 422
    assert chat_llm.calls == []


def test_nearby_pharmacies(client: TestClient, places) -> None:
    place = {"eLoc": "P1", "placeName": "City Pharmacy", "lat": 1.0, "lng": 2.0}
    places.responses = [{"suggestedLocations": [place]}]

    response = client.post(
        "/pharmacies/nearby", json={"latitude": 1.0, "longitude": 2.0}, headers=HEADERS
    )

    assert response.status_code == 200
    pharmacy = response.json()["pharmacies"][0]
    assert pharmacy["id"] == "P1"
    assert pharmacy["distance"] == 0.0


def test_non_object_body_is_422(client: TestClient) -> None:
    response = client.post("/reminders", json=["not", "an", "object"], headers=HEADERS)

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_input"


def test_overview(client: TestClient) -> None:
    client.post("/reminders", json={"medicineName": "Metformin"}, headers=HEADERS)

    overview = client.get("/overview", headers=HEADERS).json()

    assert overview["activeReminders"] == 1
    assert overview["reportCount"] == 0
    assert overview["recentUploads"] == []


def test_prescription_view_lists_medicines_interactions_and_reminders(
    client: TestClient, prescriptions_llm, prescription_response
) -> None:
    prescriptions_llm.script["analyze_prescription"] = [prescription_response]
    prescription = client.post(
        "/prescriptions",
        json={"name": "Dr. Rao", "prescriptionText": "Metformin 500mg BID"},
        headers=HEADERS,
    ).json()
    client.post(
        "/reminders",
        json={"medicineName": "Metformin", "prescriptionId": prescription["id"]},
        headers=HEADERS,
    )

    page = client.get(f"/prescriptions/{prescription['id']}/view", params={"user": "patient-1"})

    assert page.status_code == 200
    assert "Metformin" in page.text
    assert "[low risk]" in page.text
    assert "Monitor blood glucose." in page.text
    assert "<td>On</td>" in page.text
    assert "<td>Not set</td>" in page.text

    dashboard = client.get("/", params={"user": "patient-1"})
    assert f"/prescriptions/{prescription['id']}/view?user=patient-1" in dashboard.text

    missing = client.get("/prescriptions/missing/view", params={"user": "patient-1"})
    assert missing.status_code == 404


def test_dashboard_renders_cholesterol_series(
    client: TestClient, reports_llm, decision_support_response
) -> None:
    reports_llm.script["extract_medical_data"] = [
        {"extractedValues": [{"test": "Total Cholesterol", "value": 190.5, "unit": "mg/dL"}]}
    ]
    reports_llm.script["provide_decision_support"] = [decision_support_response]
    client.post(
        "/reports", json={"name": "Lipids", "reportText": "Total cholesterol 190"}, headers=HEADERS
    )

    overview = client.get("/overview", headers=HEADERS).json()
    page = client.get("/", params={"user": "patient-1"})

    assert overview["healthMetrics"][0]["value"] == 190.5
    assert "Health metrics over time" in page.text
    assert "190.5 mg/dL" in page.text


class FailingMigrationStore(InMemoryRecordStore):
    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    async def migrate(self) -> None:
        raise PersistenceError("database unreachable")

    async def aclose(self) -> None:
        self.closed = True


class ClosingClient:
    def __init__(self) -> None:
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def test_failed_startup_closes_clients_and_store(monkeypatch) -> None:
    handle = ClosingClient()
    bundle = ClientBundle(reports=handle, prescriptions=handle, chat=handle, places=handle)
    monkeypatch.setattr("medireport.api.main.build_clients", lambda settings: bundle)
    monkeypatch.setattr("medireport.api.main.configure_logging", lambda *args, **kwargs: None)
    store = FailingMigrationStore()
    app = create_app(store=store, settings_override=Settings(_env_file=None))

    with pytest.raises(PersistenceError):
        with TestClient(app):
            pass

    assert handle.closed is True
    assert store.closed is True
