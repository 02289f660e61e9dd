"""Credentialed client handles for the LLM and places APIs.

Each call performs exactly one upstream request (plus the token exchange for
places) and classifies failures into the shared taxonomy. Retrying is the
caller's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from medireport.config.settings import Settings
from medireport.flows.errors import (
    OutputValidationError,
    UpstreamRejectedError,
    UpstreamTransientError,
)
from medireport.flows.retry import TRANSIENT_STATUS_CODES
from medireport.flows.schemas import DataUri

logger = logging.getLogger(__name__)

UserPart = str | DataUri


class LLMClient(Protocol):
    """Interface for structured LLM completions."""

    async def generate_json(
        self,
        *,
        system_prompt: str,
        user_parts: list[UserPart],
        response_schema: dict[str, Any],
        schema_name: str,
    ) -> dict[str, Any]: ...


class PlacesClient(Protocol):
    async def search_nearby(
        self,
        *,
        latitude: float,
        longitude: float,
        keyword: str,
    ) -> dict[str, Any]: ...


class OpenAIChatClient:
    """OpenAI-compatible chat completions client returning parsed JSON objects."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        name: str = "llm",
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.name = name
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def generate_json(
        self,
        *,
        system_prompt: str,
        user_parts: list[UserPart],
        response_schema: dict[str, Any],
        schema_name: str,
    ) -> dict[str, Any]:
        if not self.api_key:
            raise UpstreamRejectedError(
                f"API key for the {self.name} client is missing", stage="request"
            )
        payload = {
            "model": self.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": [_content_part(part) for part in user_parts]},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    # Strict mode requires additionalProperties: false on every object.
                    "strict": False,
                    "schema": response_schema,
                },
            },
        }
        response_json = await self._post(payload)
        return _parse_json_content(_extract_content(response_json))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        try:
            response = await self._http.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_s,
            )
        except httpx.TransportError as exc:
            raise UpstreamTransientError(f"LLM request failed: {exc!r}") from exc
        _raise_for_status(response, service=f"{self.name} LLM")
        try:
            body = response.json()
        except ValueError as exc:
            raise OutputValidationError("LLM returned non-JSON response") from exc
        if not isinstance(body, dict):
            raise OutputValidationError("LLM response must be a JSON object")
        return body


class MapplsPlacesClient:
    """Nearby search against the Mappls (MapmyIndia) places API."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        token_url: str = "https://outpost.mappls.com/api/security/oauth/token",
        nearby_url: str = "https://atlas.mappls.com/api/places/nearby/json",
        timeout_s: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.nearby_url = nearby_url
        self.timeout_s = timeout_s
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def search_nearby(
        self,
        *,
        latitude: float,
        longitude: float,
        keyword: str,
    ) -> dict[str, Any]:
        token = await self._access_token()
        try:
            response = await self._http.get(
                self.nearby_url,
                params={"keywords": keyword, "refLocation": f"{latitude},{longitude}"},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_s,
            )
        except httpx.TransportError as exc:
            raise UpstreamTransientError(f"places request failed: {exc!r}") from exc
        _raise_for_status(response, service="places API")
        # The API answers 204 with an empty body when nothing matches.
        if response.status_code == 204 or not response.content:
            return {"suggestedLocations": []}
        try:
            body = response.json()
        except ValueError as exc:
            raise OutputValidationError("places API returned non-JSON response") from exc
        if not isinstance(body, dict):
            raise OutputValidationError("places API response must be a JSON object")
        return body

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _access_token(self) -> str:
        if not self.client_id or not self.client_secret:
            raise UpstreamRejectedError(
                "Mappls client credentials are not fully configured", stage="request"
            )
        try:
            response = await self._http.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=self.timeout_s,
            )
        except httpx.TransportError as exc:
            raise UpstreamTransientError(f"token request failed: {exc!r}") from exc
        _raise_for_status(response, service="places token API")
        try:
            token = response.json().get("access_token")
        except (ValueError, AttributeError) as exc:
            raise UpstreamRejectedError("places token API returned an unexpected body") from exc
        if not isinstance(token, str) or not token:
            raise UpstreamRejectedError("places token API did not return an access token")
        return token


@dataclass
class ClientBundle:
    """Process-owned client handles, one credential set per feature."""

    reports: LLMClient
    prescriptions: LLMClient
    chat: LLMClient
    places: PlacesClient

    async def aclose(self) -> None:
        closed: set[int] = set()
        for client in (self.reports, self.prescriptions, self.chat, self.places):
            close = getattr(client, "aclose", None)
            if close is None or id(client) in closed:
                continue
            closed.add(id(client))
            await close()


def build_clients(settings: Settings) -> ClientBundle:
    http_client = httpx.AsyncClient(timeout=settings.llm_timeout_s)

    def _llm(name: str, api_key: str) -> OpenAIChatClient:
        return OpenAIChatClient(
            api_key=api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout_s=settings.llm_timeout_s,
            http_client=http_client,
            name=name,
        )

    client_id, client_secret = settings.resolved_mappls_credentials()
    places = MapplsPlacesClient(
        client_id=client_id,
        client_secret=client_secret,
        token_url=settings.mappls_token_url,
        nearby_url=settings.mappls_nearby_url,
        timeout_s=settings.places_timeout_s,
        http_client=http_client,
    )
    for name, key in (
        ("reports", settings.resolved_reports_api_key()),
        ("prescriptions", settings.resolved_prescriptions_api_key()),
        ("chat", settings.resolved_chat_api_key()),
    ):
        if not key:
            logger.warning("clients event=missing_api_key client=%s", name)
    return ClientBundle(
        reports=_llm("reports", settings.resolved_reports_api_key()),
        prescriptions=_llm("prescriptions", settings.resolved_prescriptions_api_key()),
        chat=_llm("chat", settings.resolved_chat_api_key()),
        places=places,
    )


def _content_part(part: UserPart) -> dict[str, Any]:
    if isinstance(part, DataUri):
        if part.mime_type.startswith("image/"):
            return {"type": "image_url", "image_url": {"url": part.uri}}
        return {
            "type": "file",
            "file": {"filename": _filename_for(part.mime_type), "file_data": part.uri},
        }
    return {"type": "text", "text": part}


def _filename_for(mime_type: str) -> str:
    extensions = {
        "application/pdf": "pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
        "text/plain": "txt",
    }
    return f"upload.{extensions.get(mime_type, 'bin')}"


def _raise_for_status(response: httpx.Response, *, service: str) -> None:
    if response.is_success:
        return
    status = response.status_code
    detail = _error_detail(response)
    message = f"{service} request failed with status {status}: {detail}"
    if status in TRANSIENT_STATUS_CODES:
        raise UpstreamTransientError(message, status_code=status)
    raise UpstreamRejectedError(message, status_code=status)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:400] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"][:400]
        if isinstance(error, str):
            return error[:400]
    return json.dumps(body)[:400]


def _extract_content(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices", [])
    if not choices:
        raise OutputValidationError("LLM response did not contain choices")

    message = choices[0].get("message", {})
    content = message.get("content", "")
    if isinstance(content, str):
        text = content.strip()
    elif isinstance(content, list):
        text_segments: list[str] = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                text_segments.append(item["text"])
        text = "".join(text_segments).strip()
    else:
        text = ""
    if not text:
        raise OutputValidationError("LLM response content is empty")
    return text


def _parse_json_content(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise OutputValidationError("LLM content was not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise OutputValidationError("LLM content must be a JSON object")
    return parsed
