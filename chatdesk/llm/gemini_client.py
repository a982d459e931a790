"""Google Gemini chat completion client."""
from __future__ import annotations

import json
import logging
from typing import Iterable, Iterator, List, Optional

import requests

from ..errors import AuthError, ProviderError
from .base import LLMClient, Model
from .http_errors import raise_for_status, translate_request_errors

_LOGGER = logging.getLogger(__name__)

_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _to_gemini_payload(messages: Iterable[dict[str, str]]) -> dict[str, object]:
    """Convert chat messages to Gemini's ``contents``/``systemInstruction`` shape."""

    contents: List[dict[str, object]] = []
    system_parts: List[dict[str, str]] = []
    for message in messages:
        role = message.get("role", "user")
        text = message.get("content", "")
        if role == "system":
            system_parts.append({"text": text})
            continue
        contents.append(
            {
                "role": "model" if role == "assistant" else "user",
                "parts": [{"text": text}],
            }
        )
    payload: dict[str, object] = {"contents": contents}
    if system_parts:
        payload["systemInstruction"] = {"parts": system_parts}
    return payload


class GeminiClient(LLMClient):
    """Client for the Gemini ``generativelanguage`` REST API."""

    provider_id = "gemini"
    display_name = "Google Gemini"
    fallback_models = ("gemini-1.5-flash", "gemini-1.5-pro")

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str | None = None,
        request_timeout: float = 120.0,
    ) -> None:
        super().__init__(request_timeout=request_timeout)
        self.api_key = api_key
        self.base_url = (base_url or _BASE_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _key(self) -> str:
        if not self.api_key:
            raise AuthError("Gemini API key not found.")
        return self.api_key

    def list_models(self) -> List[Model]:
        key = self._key()
        with translate_request_errors(self.display_name):
            response = requests.get(
                f"{self.base_url}/models",
                params={"key": key},
                timeout=self.request_timeout,
            )
        raise_for_status(response, self.display_name)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Invalid response from Gemini") from exc
        models: List[Model] = []
        for entry in data.get("models", []):
            if "generateContent" not in entry.get("supportedGenerationMethods", []):
                continue
            # "models/gemini-pro" -> "gemini-pro"
            name = str(entry.get("name", "")).split("/")[-1]
            if name:
                models.append(
                    Model(
                        name=name,
                        provider_id=self.provider_id,
                        display_name=str(entry.get("displayName") or ""),
                    )
                )
        return models or super().list_models()

    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        key = self._key()
        payload = _to_gemini_payload(messages)
        with translate_request_errors(self.display_name):
            with requests.post(
                f"{self.base_url}/models/{model}:streamGenerateContent",
                params={"alt": "sse", "key": key},
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.request_timeout,
                stream=True,
            ) as response:
                raise_for_status(response, self.display_name)
                for line in response.iter_lines(decode_unicode=True):
                    if not line or not line.startswith("data:"):
                        continue
                    try:
                        data = json.loads(line[len("data:"):].strip())
                    except json.JSONDecodeError:
                        _LOGGER.debug("Skipping malformed Gemini event: %r", line)
                        continue
                    for candidate in data.get("candidates", [])[:1]:
                        for part in (candidate.get("content") or {}).get("parts", []):
                            text = part.get("text")
                            if text:
                                yield text
