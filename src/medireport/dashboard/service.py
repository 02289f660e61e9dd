"""User-initiated dashboard actions.

Each action runs its steps strictly in sequence: validate the request, run
one or more flows, then persist. Nothing is written when a flow fails.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime
from typing import Any

from medireport.dashboard.schemas import (
    AnalyzePrescriptionRequest,
    AnalyzeReportRequest,
    ChatRequest,
    CreateReminderRequest,
    NearbyPharmaciesRequest,
    PatientProfile,
)
from medireport.flows.errors import InputError
from medireport.flows.registry import FlowSet
from medireport.flows.schemas import (
    ChatMessage,
    DecisionSupportInput,
    ReportSummary,
    dump,
    validate,
)
from medireport.storage.base import (
    NEARBY_RESULTS,
    PRESCRIPTIONS,
    REMINDERS,
    REPORTS,
    RecordStore,
)
from medireport.storage.models import Record

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_TIME = "09:00"
DEFAULT_REMINDER_RECURRENCE = "Daily"
RECENT_UPLOADS_LIMIT = 3
HEALTH_METRIC_TEST = "total cholesterol"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def patient_info(profile: PatientProfile | None, *, today: date) -> str:
    """Render the patient line passed to decision support."""
    age: int | str = "N/A"
    sex = "N/A"
    if profile is not None:
        if profile.dob is not None:
            age = today.year - profile.dob.year
        if profile.sex:
            sex = profile.sex
    return f"Patient Age: {age}, Sex: {sex}"


def abnormal_count(payload: dict[str, Any]) -> int:
    values = payload.get("extractedValues") or []
    return sum(1 for item in values if isinstance(item, dict) and item.get("status") == "abnormal")


def report_summary(record: Record) -> ReportSummary:
    abnormal = abnormal_count(record.payload)
    return ReportSummary(
        name=str(record.payload.get("name") or "Untitled report"),
        status="Action Required" if abnormal > 0 else "Normal",
        abnormal_results=abnormal,
    )


def health_metrics(records: Sequence[Record]) -> list[dict[str, Any]]:
    """Total cholesterol readings across reports, oldest first."""
    points: list[dict[str, Any]] = []
    for record in records:
        payload = record.payload
        for item in payload.get("extractedValues") or []:
            if not isinstance(item, dict):
                continue
            if HEALTH_METRIC_TEST not in str(item.get("test", "")).lower():
                continue
            value = item.get("value")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                points.append(
                    {
                        "reportId": record.record_id,
                        "date": str(payload.get("uploadedAt", ""))[:10],
                        "uploadedAt": payload.get("uploadedAt"),
                        "value": value,
                        "unit": item.get("unit"),
                    }
                )
            break
    points.sort(key=lambda point: str(point["uploadedAt"] or ""))
    return points


def summarize_reports(records: Sequence[Record]) -> str:
    lines: list[str] = []
    for record in records:
        payload = record.payload
        values = []
        for item in payload.get("extractedValues") or []:
            if not isinstance(item, dict):
                continue
            unit = f" {item['unit']}" if item.get("unit") else ""
            status = f" ({item['status']})" if item.get("status") else ""
            values.append(f"{item.get('test')}: {item.get('value')}{unit}{status}")
        uploaded = str(payload.get("uploadedAt", ""))[:10]
        header = f"Report '{payload.get('name', 'Untitled report')}' uploaded {uploaded}"
        lines.append(f"{header}: " + ("; ".join(values) if values else "no values extracted"))
        explanation = payload.get("patientExplanation")
        if explanation:
            lines.append(f"  Explanation: {explanation}")
    return "\n".join(lines)


def summarize_prescriptions(records: Sequence[Record]) -> str:
    lines: list[str] = []
    for record in records:
        payload = record.payload
        medicines = [
            f"{item.get('name')} {item.get('dosage')} {item.get('frequency')}".strip()
            for item in payload.get("medicines") or []
            if isinstance(item, dict)
        ]
        name = payload.get("name", "Untitled prescription")
        lines.append(f"Prescription '{name}': " + (", ".join(medicines) or "no medicines"))
        for item in payload.get("interactions") or []:
            if isinstance(item, dict):
                lines.append(
                    f"  Interaction ({item.get('severity')}): {item.get('drugA')} + "
                    f"{item.get('drugB')}: {item.get('message')}"
                )
    return "\n".join(lines)


def as_document(record: Record) -> dict[str, Any]:
    return {"id": record.record_id, **record.payload}


class DashboardService:
    """Composes flows with the record store for one process."""

    def __init__(
        self,
        *,
        store: RecordStore,
        flows: FlowSet,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.flows = flows
        self._clock = clock

    async def analyze_report(
        self, owner_id: str, request: AnalyzeReportRequest | dict[str, Any]
    ) -> dict[str, Any]:
        owner = _owner(owner_id)
        req = validate(AnalyzeReportRequest, request, stage="input")
        extraction = await self.flows.extract_medical_data.run(
            {"reportText": req.report_text, "reportDataUri": req.report_data_uri}
        )
        now = self._clock()
        support = await self.flows.decision_support.run(
            DecisionSupportInput(
                extracted_values=extraction.extracted_values,
                patient_info=patient_info(req.patient, today=now.date()),
            )
        )
        document: dict[str, Any] = {
            "name": req.name,
            "patientId": owner,
            "uploadedAt": now.isoformat(),
            **dump(extraction),
            **dump(support),
        }
        record_id = None
        if req.save:
            record_id = await self.store.save(REPORTS, owner, document)
        logger.info(
            "dashboard event=report_analyzed saved=%s values=%d abnormal=%d",
            req.save,
            len(extraction.extracted_values),
            abnormal_count(document),
        )
        return {"id": record_id, **document}

    async def analyze_prescription(
        self, owner_id: str, request: AnalyzePrescriptionRequest | dict[str, Any]
    ) -> dict[str, Any]:
        owner = _owner(owner_id)
        req = validate(AnalyzePrescriptionRequest, request, stage="input")
        analysis = await self.flows.analyze_prescription.run(
            {
                "prescriptionText": req.prescription_text,
                "prescriptionDataUri": req.prescription_data_uri,
            }
        )
        document: dict[str, Any] = {
            "name": req.name,
            "patientId": owner,
            "uploadedAt": self._clock().isoformat(),
            **dump(analysis),
        }
        record_id = None
        if req.save:
            record_id = await self.store.save(PRESCRIPTIONS, owner, document)
        logger.info(
            "dashboard event=prescription_analyzed saved=%s medicines=%d interactions=%d",
            req.save,
            len(analysis.medicines),
            len(analysis.interactions),
        )
        return {"id": record_id, **document}

    async def list_reports(self, owner_id: str) -> list[dict[str, Any]]:
        records = await self.store.list(REPORTS, _owner(owner_id))
        return [as_document(record) for record in records]

    async def get_report(self, owner_id: str, report_id: str) -> dict[str, Any] | None:
        record = await self.store.get(REPORTS, _owner(owner_id), report_id)
        return as_document(record) if record else None

    async def list_prescriptions(self, owner_id: str) -> list[dict[str, Any]]:
        records = await self.store.list(PRESCRIPTIONS, _owner(owner_id))
        return [as_document(record) for record in records]

    async def get_prescription(self, owner_id: str, prescription_id: str) -> dict[str, Any] | None:
        record = await self.store.get(PRESCRIPTIONS, _owner(owner_id), prescription_id)
        return as_document(record) if record else None

    async def create_reminder(
        self, owner_id: str, request: CreateReminderRequest | dict[str, Any]
    ) -> dict[str, Any]:
        owner = _owner(owner_id)
        req = validate(CreateReminderRequest, request, stage="input")
        document = {
            "patientId": owner,
            "prescriptionId": req.prescription_id,
            "medicineName": req.medicine_name,
            "time": DEFAULT_REMINDER_TIME,
            "recurrence": DEFAULT_REMINDER_RECURRENCE,
            "enabled": True,
        }
        record_id = await self.store.save(REMINDERS, owner, document)
        logger.info("dashboard event=reminder_created record_id=%s", record_id)
        return {"id": record_id, **document}

    async def list_reminders(self, owner_id: str) -> list[dict[str, Any]]:
        records = await self.store.list(REMINDERS, _owner(owner_id))
        documents = [as_document(record) for record in records]
        return sorted(documents, key=lambda item: str(item.get("medicineName", "")))

    async def set_reminder_enabled(
        self, owner_id: str, reminder_id: str, enabled: bool
    ) -> dict[str, Any]:
        record = await self.store.set_enabled(_owner(owner_id), reminder_id, enabled)
        logger.info(
            "dashboard event=reminder_toggled record_id=%s enabled=%s", reminder_id, enabled
        )
        return as_document(record)

    async def chat(self, owner_id: str, request: ChatRequest | dict[str, Any]) -> str:
        owner = _owner(owner_id)
        req = validate(ChatRequest, request, stage="input")
        reports = await self.store.list(REPORTS, owner)
        prescriptions = await self.store.list(PRESCRIPTIONS, owner)
        reply = await self.flows.chat_with_data.run(
            {
                "messages": [_message(item) for item in req.messages],
                "reportData": summarize_reports(reports),
                "prescriptionData": summarize_prescriptions(prescriptions),
            }
        )
        return reply.reply

    async def ask_assistant(self, owner_id: str, request: ChatRequest | dict[str, Any]) -> str:
        owner = _owner(owner_id)
        req = validate(ChatRequest, request, stage="input")
        reports = await self.store.list(REPORTS, owner)
        reply = await self.flows.assistant.run(
            {
                "userId": owner,
                "messages": [_message(item) for item in req.messages],
                "reports": [dump(report_summary(record)) for record in reports],
            }
        )
        return reply.reply

    async def find_pharmacies(
        self, owner_id: str, request: NearbyPharmaciesRequest | dict[str, Any]
    ) -> dict[str, Any]:
        owner = _owner(owner_id)
        req = validate(NearbyPharmaciesRequest, request, stage="input")
        result = await self.flows.nearby_pharmacies.run(
            {"latitude": req.latitude, "longitude": req.longitude}
        )
        document: dict[str, Any] = {
            "patientId": owner,
            "searchedAt": self._clock().isoformat(),
            "location": {"lat": req.latitude, "lng": req.longitude},
            **dump(result),
        }
        record_id = None
        if req.save:
            record_id = await self.store.save(NEARBY_RESULTS, owner, document)
        logger.info(
            "dashboard event=pharmacies_found saved=%s count=%d", req.save, len(result.pharmacies)
        )
        return {"id": record_id, **document}

    async def overview(self, owner_id: str) -> dict[str, Any]:
        owner = _owner(owner_id)
        reports = await self.store.list(REPORTS, owner)
        prescriptions = await self.store.list(PRESCRIPTIONS, owner)
        reminders = await self.store.list(REMINDERS, owner)
        uploads = [
            *({"type": "report", **as_document(record)} for record in reports),
            *({"type": "prescription", **as_document(record)} for record in prescriptions),
        ]
        uploads.sort(key=lambda item: str(item.get("uploadedAt", "")), reverse=True)
        latest = next((item for item in uploads if item["type"] == "report"), None)
        return {
            "reportCount": len(reports),
            "prescriptionCount": len(prescriptions),
            "abnormalResults": abnormal_count(latest) if latest else 0,
            "interactionCount": sum(
                len(record.payload.get("interactions") or []) for record in prescriptions
            ),
            "activeReminders": sum(1 for record in reminders if record.enabled),
            "recentUploads": [
                {
                    "id": item["id"],
                    "type": item["type"],
                    "name": item.get("name"),
                    "uploadedAt": item.get("uploadedAt"),
                }
                for item in uploads[:RECENT_UPLOADS_LIMIT]
            ],
            "healthMetrics": health_metrics(reports),
        }


def _owner(owner_id: str) -> str:
    owner = (owner_id or "").strip()
    if not owner or "/" in owner:
        raise InputError("owner id must be a non-empty path segment")
    return owner


def _message(message: ChatMessage) -> dict[str, str]:
    return {"role": message.role, "content": message.content}
