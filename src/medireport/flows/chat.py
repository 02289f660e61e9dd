"""Conversational flows. History is passed in by value on every call."""

from __future__ import annotations

from medireport.flows import prompts
from medireport.flows.base import LLMFlow
from medireport.flows.clients import UserPart
from medireport.flows.schemas import AssistantInput, ChatReply, ChatWithDataInput

CHAT_FALLBACK_REPLY = "I'm sorry, I couldn't process that. Could you please rephrase?"
ASSISTANT_FALLBACK_REPLY = (
    "Sorry, I'm having trouble responding right now. Please try again in a moment."
)


class ChatWithDataFlow(LLMFlow[ChatWithDataInput, ChatReply]):
    name = "chat_with_ai"
    input_schema = ChatWithDataInput
    output_schema = ChatReply
    system_prompt = prompts.CHAT_WITH_DATA_SYSTEM

    def _user_parts(self, request: ChatWithDataInput) -> list[UserPart]:
        return [prompts.chat_with_data_prompt(request)]

    def _finalize(self, request: ChatWithDataInput, output: ChatReply) -> ChatReply:
        if not output.reply.strip():
            return ChatReply(reply=CHAT_FALLBACK_REPLY)
        return ChatReply(reply=output.reply.strip())


class AssistantFlow(LLMFlow[AssistantInput, ChatReply]):
    name = "assistant"
    input_schema = AssistantInput
    output_schema = ChatReply
    system_prompt = prompts.ASSISTANT_SYSTEM

    def _user_parts(self, request: AssistantInput) -> list[UserPart]:
        return [prompts.assistant_prompt(request)]

    def _finalize(self, request: AssistantInput, output: ChatReply) -> ChatReply:
        if not output.reply.strip():
            return ChatReply(reply=ASSISTANT_FALLBACK_REPLY)
        return ChatReply(reply=output.reply.strip())
