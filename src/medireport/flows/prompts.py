"""Prompt templates for the LLM-backed flows."""

from __future__ import annotations

import json

from medireport.flows.schemas import (
    AssistantInput,
    ChatMessage,
    ChatWithDataInput,
    DecisionSupportInput,
    ExtractedValue,
)

MEDICAL_DISCLAIMER = (
    "Disclaimer: I am an AI assistant. This information is not a substitute for professional "
    "medical advice. Please consult with a healthcare provider for any health concerns."
)

EXTRACT_MEDICAL_DATA_SYSTEM = """\
You are an AI assistant specialized in extracting key medical data from reports.
Your goal is to accurately and efficiently process medical information by identifying and \
extracting relevant data points.
Apply reasoning to include only the most important and relevant information in the extracted values.

Extract the key medical data from the report, focusing on specific test results and their \
corresponding values, units, reference ranges, and statuses.
Return JSON only, in the following format:
{
  "extractedValues": [
    {
      "test": "Test Name",
      "value": "Test Value",
      "unit": "Unit of Measurement",
      "referenceRange": {"low": 0, "high": 0},
      "status": "normal" | "abnormal"
    }
  ]
}
Ensure that the extracted data is accurate, complete, and well-formatted."""

ANALYZE_PRESCRIPTION_SYSTEM = """\
You are a pharmacist analyzing a prescription.

Extract the medicines, their dosages, frequencies, and routes of administration from the \
prescription. Include the reason for each medicine when the prescription states it.

Also, check for potential drug interactions based on the extracted medicines. Each interaction \
names drugA and drugB, a severity of "low", "moderate" or "high", and a short message. If there \
are no interactions, return an empty array.
Return JSON only with keys "medicines" and "interactions"."""

DECISION_SUPPORT_SYSTEM = """\
You are an AI assistant that helps medical professionals by providing decision support based on \
medical report data.

Analyze the extracted medical data provided, along with relevant patient information, and provide \
the following:

1. Suggested Follow-Ups: Recommend any necessary follow-up tests, including the test name, the \
reason for the follow-up, and the priority.
2. Risk Summary: Summarize any potential medical conditions or risks identified from the data, \
including the condition, the confidence level of the assessment, and any additional notes.
3. Patient Explanation: Provide a patient-friendly explanation of the findings in simple terms.

Ensure that your suggestions and summaries are evidence-based and clinically relevant.
Return JSON only with keys "suggestedFollowUps", "riskSummary" and "patientExplanation"; use \
arrays where appropriate."""

CHAT_WITH_DATA_SYSTEM = """\
You are a friendly and helpful AI medical assistant. Your role is to answer questions about a \
user's health based on the data they have provided.
Use the user's medical history as the primary source of truth to answer their questions.
Based on the conversation history and the provided medical data, provide a helpful and accurate \
response to the user's latest query.
Return JSON only: {"reply": "..."}"""

ASSISTANT_SYSTEM = f"""\
You are a helpful AI assistant for a medical dashboard application.
Your name is MediBot.
Your capabilities are:
1. Answering questions about how to use the application.
2. Providing general information about health and wellness topics.
3. Answering questions about the user's medical reports using the report list provided.

When providing medical information, ALWAYS include the following disclaimer at the end of your \
response: "{MEDICAL_DISCLAIMER}"

If the user asks a question that is too complex, involves a diagnosis, or is about a specific \
medical condition that requires a doctor's expertise, you MUST decline to answer and strongly \
recommend they consult a healthcare professional.

Be friendly, conversational, and helpful.
Return JSON only: {{"reply": "..."}}"""


def report_prompt(report_text: str | None) -> str:
    if report_text:
        return f"Here is the medical report:\n{report_text}"
    return "Here is the medical report (attached file)."


def prescription_prompt(prescription_text: str | None) -> str:
    if prescription_text:
        return f"Prescription text:\n{prescription_text}"
    return "Prescription photo (attached)."


def format_extracted_value(item: ExtractedValue) -> str:
    value = f"{item.value} {item.unit}" if item.unit else f"{item.value}"
    reference = ""
    if item.reference_range is not None:
        low, high = item.reference_range.low, item.reference_range.high
        if low is not None and high is not None:
            reference = f"{low} - {high}"
        elif low is not None:
            reference = f">= {low}"
        elif high is not None:
            reference = f"<= {high}"
    status = item.status or "unknown"
    return f"- Test: {item.test}, Value: {value}, Reference Range: {reference}, Status: {status}"


def decision_support_prompt(payload: DecisionSupportInput) -> str:
    lines = [format_extracted_value(item) for item in payload.extracted_values]
    values = "\n".join(lines) if lines else "- (no values extracted)"
    return (
        f"Here's the extracted medical data:\n{values}\n\n"
        f"Patient Information: {payload.patient_info}"
    )


def format_history(messages: tuple[ChatMessage, ...]) -> str:
    return "\n".join(f"- {message.role}: {message.content}" for message in messages)


def chat_with_data_prompt(payload: ChatWithDataInput) -> str:
    return (
        "SUMMARY OF MEDICAL REPORTS:\n"
        f"{payload.report_data or 'No reports on file.'}\n\n"
        "SUMMARY OF PRESCRIPTIONS:\n"
        f"{payload.prescription_data or 'No prescriptions on file.'}\n\n"
        "---\n\n"
        "CONVERSATION HISTORY:\n"
        f"{format_history(payload.messages)}\n\n"
        "Answer the user's last message."
    )


def assistant_prompt(payload: AssistantInput) -> str:
    reports = [report.model_dump(by_alias=True) for report in payload.reports]
    history = [message.model_dump() for message in payload.messages]
    return (
        f"My user ID is {payload.user_id}.\n"
        f"My reports: {json.dumps(reports, ensure_ascii=True)}\n"
        f"Here is our conversation history: {json.dumps(history, ensure_ascii=True)}"
    )
