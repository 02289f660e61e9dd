"""Pydantic schemas for flow inputs/outputs and the validation boundary."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Annotated, Any, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from medireport.flows.errors import InputError, OutputValidationError, ValidationIssue

TModel = TypeVar("TModel", bound=BaseModel)

SUPPORTED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "image/png",
        "image/jpeg",
        "image/webp",
        "image/heic",
    }
)

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?P<params>(?:;[\w.+-]+=[^;,]+)*);base64,(?P<data>.*)$",
    re.DOTALL,
)


class WireModel(BaseModel):
    """Base model for values crossing the upstream boundary.

    Unknown fields are ignored because LLM output is not contractually stable.
    Field names are camelCase on the wire and snake_case in Python.
    """

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


@dataclass(frozen=True)
class DataUri:
    mime_type: str
    data: str

    @property
    def uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @property
    def size_bytes(self) -> int:
        return len(self.data) * 3 // 4 - self.data[-2:].count("=")


def parse_data_uri(value: str) -> DataUri:
    """Split a base64 data URI and sniff its MIME type."""
    match = _DATA_URI_RE.match(value.strip())
    if match is None:
        raise ValueError("expected 'data:<mimetype>;base64,<encoded_data>'")
    mime_type = match.group("mime").lower()
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise ValueError(f"Unsupported MIME type: {mime_type}")
    data = "".join(match.group("data").split())
    if not data:
        raise ValueError("data URI has no content")
    try:
        base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("data URI content is not valid base64") from exc
    return DataUri(mime_type=mime_type, data=data)


def require_one_payload(text: str | None, data_uri: str | None, *, label: str) -> None:
    """Enforce the request payload union: inline text or a data URI, never both."""
    if text is None and data_uri is None:
        raise ValueError(f"provide either {label} text or a {label} file, got neither")
    if text is not None and data_uri is not None:
        raise ValueError(f"provide either {label} text or a {label} file, not both")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_data_uri(value: str | None) -> str | None:
    if value is None:
        return None
    return parse_data_uri(value).uri


OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]


class ReferenceRange(WireModel):
    low: float | None = None
    high: float | None = None


class ExtractedValue(WireModel):
    test: str
    value: float | str
    unit: str | None = None
    reference_range: ReferenceRange | None = None
    status: Literal["normal", "abnormal"] | None = None


class ExtractMedicalDataInput(WireModel):
    report_text: OptionalText = None
    report_data_uri: OptionalText = None

    @field_validator("report_data_uri")
    @classmethod
    def _valid_data_uri(cls, value: str | None) -> str | None:
        return _check_data_uri(value)

    @model_validator(mode="after")
    def _exactly_one(self) -> ExtractMedicalDataInput:
        require_one_payload(self.report_text, self.report_data_uri, label="report")
        return self


class ExtractMedicalDataOutput(WireModel):
    extracted_values: list[ExtractedValue]


class Medicine(WireModel):
    name: str
    dosage: str
    frequency: str
    route: str
    reason: str | None = None


class DrugInteraction(WireModel):
    drug_a: str
    drug_b: str
    severity: Literal["low", "moderate", "high"]
    message: str


class AnalyzePrescriptionInput(WireModel):
    prescription_text: OptionalText = None
    prescription_data_uri: OptionalText = None

    @field_validator("prescription_data_uri")
    @classmethod
    def _valid_data_uri(cls, value: str | None) -> str | None:
        return _check_data_uri(value)

    @model_validator(mode="after")
    def _exactly_one(self) -> AnalyzePrescriptionInput:
        require_one_payload(
            self.prescription_text, self.prescription_data_uri, label="prescription"
        )
        return self


class AnalyzePrescriptionOutput(WireModel):
    medicines: list[Medicine]
    interactions: list[DrugInteraction] = Field(default_factory=list)


class DecisionSupportInput(WireModel):
    extracted_values: list[ExtractedValue]
    patient_info: str


class FollowUp(WireModel):
    test: str
    reason: str
    priority: str


class RiskItem(WireModel):
    condition: str
    confidence: str
    note: str


class DecisionSupportOutput(WireModel):
    suggested_follow_ups: list[FollowUp]
    risk_summary: list[RiskItem]
    patient_explanation: str


class ChatMessage(WireModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "model"]
    content: str = Field(min_length=1)


class ChatWithDataInput(WireModel):
    messages: tuple[ChatMessage, ...] = Field(min_length=1)
    report_data: str = ""
    prescription_data: str = ""

    @model_validator(mode="after")
    def _ends_with_user(self) -> ChatWithDataInput:
        if self.messages[-1].role != "user":
            raise ValueError("the last message must come from the user")
        return self


class ReportSummary(WireModel):
    name: str
    status: str
    abnormal_results: int = Field(ge=0)


class AssistantInput(WireModel):
    user_id: str = Field(min_length=1)
    messages: tuple[ChatMessage, ...] = Field(min_length=1)
    reports: list[ReportSummary] = Field(default_factory=list)


class ChatReply(WireModel):
    reply: str


class Coordinates(WireModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class NearbyPharmaciesInput(WireModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    keyword: str = Field(default="pharmacy", min_length=1)


class Pharmacy(WireModel):
    id: str
    name: str
    address: str
    distance: float | None = Field(default=None, ge=0.0)
    coords: Coordinates


class NearbyPharmaciesOutput(WireModel):
    pharmacies: list[Pharmacy]


class PlaceSuggestion(WireModel):
    """Raw place row returned by the nearby-places API."""

    e_loc: str
    place_name: str
    place_address: str = ""
    distance: float | None = None
    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "lng"))


class PlaceSearchResult(WireModel):
    suggested_locations: list[PlaceSuggestion] = Field(default_factory=list)


def validate(
    schema: type[TModel],
    value: Any,
    *,
    stage: Literal["input", "output"] = "output",
    flow: str | None = None,
) -> TModel:
    """Validate ``value`` against ``schema`` and return the narrowed model.

    Every failing field is reported, not just the first one. Input failures
    raise ``InputError``; anything else raises ``OutputValidationError``.
    """
    if isinstance(value, schema):
        return value
    try:
        return schema.model_validate(value)
    except ValidationError as exc:
        issues = issues_from_validation_error(exc)
        error_cls = InputError if stage == "input" else OutputValidationError
        raise error_cls(_describe(schema, issues), issues=issues, flow=flow) from exc


def issues_from_validation_error(exc: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for item in exc.errors(include_url=False):
        location = ".".join(str(part) for part in item.get("loc", ())) or "(root)"
        message = str(item.get("msg", "invalid value"))
        issues.append(ValidationIssue(field=location, message=message, kind=str(item.get("type"))))
    return issues


def dump(model: BaseModel) -> dict[str, Any]:
    """Serialize a validated model to its camelCase wire shape."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _describe(schema: type[BaseModel], issues: list[ValidationIssue]) -> str:
    parts = [f"{issue.field}: {issue.message}" for issue in issues[:8]]
    if len(issues) > 8:
        parts.append(f"... {len(issues) - 8} more")
    return f"{schema.__name__} failed validation ({len(issues)} issue(s)): " + "; ".join(parts)
