"""Ollama chat completion client."""
from __future__ import annotations

import json
import logging
from typing import Iterable, Iterator, List

import requests

from ..errors import ProviderError
from .base import LLMClient, Model
from .http_errors import raise_for_status, translate_request_errors

_LOGGER = logging.getLogger(__name__)


class OllamaClient(LLMClient):
    """Client for the Ollama local inference server."""

    provider_id = "ollama"
    display_name = "Ollama"
    requires_api_key = False

    def __init__(
        self,
        base_url: str | None = None,
        request_timeout: float = 120.0,
    ) -> None:
        super().__init__(request_timeout=request_timeout)
        self.base_url = (base_url or "http://localhost:11434").rstrip("/")

    def list_models(self) -> List[Model]:
        with translate_request_errors(self.display_name):
            response = requests.get(f"{self.base_url}/api/tags", timeout=self.request_timeout)
        raise_for_status(response, self.display_name)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Invalid response from Ollama server") from exc
        models: List[Model] = []
        for entry in data.get("models", []):
            name = str(entry.get("name", "")).strip()
            if not name:
                continue
            models.append(
                Model(
                    name=name,
                    provider_id=self.provider_id,
                    display_name=name.replace(":latest", ""),
                )
            )
        return models

    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        payload = {
            "model": model,
            "messages": list(messages),
            "stream": True,
        }
        with translate_request_errors(self.display_name):
            with requests.post(
                f"{self.base_url}/api/chat",
                data=json.dumps(payload),
                timeout=self.request_timeout,
                stream=True,
            ) as response:
                raise_for_status(response, self.display_name)
                for line in response.iter_lines(decode_unicode=True):
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        _LOGGER.debug("Skipping malformed Ollama line: %r", line)
                        continue
                    if data.get("error"):
                        raise ProviderError(f"Ollama error: {data['error']}")
                    message = data.get("message") or {}
                    content = message.get("content")
                    if content:
                        yield content
                    if data.get("done"):
                        return
