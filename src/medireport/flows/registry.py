"""Flow wiring: one instance per flow, bound to its client handle."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from medireport.flows.chat import AssistantFlow, ChatWithDataFlow
from medireport.flows.clients import ClientBundle
from medireport.flows.medical import (
    AnalyzePrescriptionFlow,
    DecisionSupportFlow,
    ExtractMedicalDataFlow,
)
from medireport.flows.pharmacies import FindNearbyPharmaciesFlow
from medireport.flows.retry import RetryPolicy, Sleeper


@dataclass(frozen=True)
class FlowSet:
    extract_medical_data: ExtractMedicalDataFlow
    decision_support: DecisionSupportFlow
    analyze_prescription: AnalyzePrescriptionFlow
    chat_with_data: ChatWithDataFlow
    assistant: AssistantFlow
    nearby_pharmacies: FindNearbyPharmaciesFlow

    def names(self) -> list[str]:
        return sorted(
            flow.name
            for flow in (
                self.extract_medical_data,
                self.decision_support,
                self.analyze_prescription,
                self.chat_with_data,
                self.assistant,
                self.nearby_pharmacies,
            )
        )


def build_flows(
    clients: ClientBundle,
    policy: RetryPolicy,
    *,
    sleep: Sleeper = asyncio.sleep,
) -> FlowSet:
    return FlowSet(
        extract_medical_data=ExtractMedicalDataFlow(
            client=clients.reports, policy=policy, sleep=sleep
        ),
        decision_support=DecisionSupportFlow(client=clients.reports, policy=policy, sleep=sleep),
        analyze_prescription=AnalyzePrescriptionFlow(
            client=clients.prescriptions, policy=policy, sleep=sleep
        ),
        chat_with_data=ChatWithDataFlow(client=clients.chat, policy=policy, sleep=sleep),
        assistant=AssistantFlow(client=clients.chat, policy=policy, sleep=sleep),
        nearby_pharmacies=FindNearbyPharmaciesFlow(
            client=clients.places, policy=policy, sleep=sleep
        ),
    )
