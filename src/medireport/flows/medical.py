"""Report extraction, decision support and prescription analysis flows."""

from __future__ import annotations

from medireport.flows import prompts
from medireport.flows.base import LLMFlow
from medireport.flows.clients import UserPart
from medireport.flows.schemas import (
    AnalyzePrescriptionInput,
    AnalyzePrescriptionOutput,
    DecisionSupportInput,
    DecisionSupportOutput,
    ExtractMedicalDataInput,
    ExtractMedicalDataOutput,
    parse_data_uri,
)


class ExtractMedicalDataFlow(LLMFlow[ExtractMedicalDataInput, ExtractMedicalDataOutput]):
    name = "extract_medical_data"
    input_schema = ExtractMedicalDataInput
    output_schema = ExtractMedicalDataOutput
    system_prompt = prompts.EXTRACT_MEDICAL_DATA_SYSTEM

    def _user_parts(self, request: ExtractMedicalDataInput) -> list[UserPart]:
        parts: list[UserPart] = [prompts.report_prompt(request.report_text)]
        if request.report_data_uri is not None:
            parts.append(parse_data_uri(request.report_data_uri))
        return parts


class DecisionSupportFlow(LLMFlow[DecisionSupportInput, DecisionSupportOutput]):
    name = "provide_decision_support"
    input_schema = DecisionSupportInput
    output_schema = DecisionSupportOutput
    system_prompt = prompts.DECISION_SUPPORT_SYSTEM

    def _user_parts(self, request: DecisionSupportInput) -> list[UserPart]:
        return [prompts.decision_support_prompt(request)]


class AnalyzePrescriptionFlow(LLMFlow[AnalyzePrescriptionInput, AnalyzePrescriptionOutput]):
    name = "analyze_prescription"
    input_schema = AnalyzePrescriptionInput
    output_schema = AnalyzePrescriptionOutput
    system_prompt = prompts.ANALYZE_PRESCRIPTION_SYSTEM

    def _user_parts(self, request: AnalyzePrescriptionInput) -> list[UserPart]:
        parts: list[UserPart] = [prompts.prescription_prompt(request.prescription_text)]
        if request.prescription_data_uri is not None:
            parts.append(parse_data_uri(request.prescription_data_uri))
        return parts
