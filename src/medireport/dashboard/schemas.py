"""Request models for user-initiated dashboard actions."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Literal

from pydantic import Field, StringConstraints

from medireport.flows.schemas import ChatMessage, OptionalText, WireModel

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]


class PatientProfile(WireModel):
    dob: date | None = None
    sex: Literal["male", "female", "other", "prefer_not_to_say"] | None = None


class AnalyzeReportRequest(WireModel):
    name: Name
    report_text: OptionalText = None
    report_data_uri: OptionalText = None
    patient: PatientProfile | None = None
    save: bool = True


class AnalyzePrescriptionRequest(WireModel):
    name: Name
    prescription_text: OptionalText = None
    prescription_data_uri: OptionalText = None
    save: bool = True


class CreateReminderRequest(WireModel):
    medicine_name: Name
    prescription_id: OptionalText = None


class ToggleReminderRequest(WireModel):
    enabled: bool


class ChatRequest(WireModel):
    messages: tuple[ChatMessage, ...] = Field(min_length=1)


class NearbyPharmaciesRequest(WireModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    save: bool = True
