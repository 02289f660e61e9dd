"""Schema-validated, retried calls to the LLM and places APIs."""

from medireport.flows.base import Flow, LLMFlow
from medireport.flows.chat import AssistantFlow, ChatWithDataFlow
from medireport.flows.clients import (
    ClientBundle,
    LLMClient,
    MapplsPlacesClient,
    OpenAIChatClient,
    PlacesClient,
    build_clients,
)
from medireport.flows.medical import (
    AnalyzePrescriptionFlow,
    DecisionSupportFlow,
    ExtractMedicalDataFlow,
)
from medireport.flows.pharmacies import FindNearbyPharmaciesFlow
from medireport.flows.registry import FlowSet, build_flows
from medireport.flows.retry import RetryPolicy, invoke, is_transient_error, policy_from_settings
from medireport.flows.schemas import dump, validate

__all__ = [
    "AnalyzePrescriptionFlow",
    "AssistantFlow",
    "ChatWithDataFlow",
    "ClientBundle",
    "DecisionSupportFlow",
    "ExtractMedicalDataFlow",
    "FindNearbyPharmaciesFlow",
    "Flow",
    "FlowSet",
    "LLMClient",
    "LLMFlow",
    "MapplsPlacesClient",
    "OpenAIChatClient",
    "PlacesClient",
    "RetryPolicy",
    "build_clients",
    "build_flows",
    "dump",
    "invoke",
    "is_transient_error",
    "policy_from_settings",
    "validate",
]
