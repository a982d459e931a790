"""OpenAI-compatible chat completion clients."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

import openai
from openai import OpenAI

from ..errors import AuthError, NetworkError, ProviderError, RateLimitError
from .base import LLMClient

_LOGGER = logging.getLogger(__name__)


@contextmanager
def _translate_errors(provider: str) -> Iterator[None]:
    try:
        yield
    except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
        raise AuthError(f"{provider} rejected the API key.") from exc
    except openai.RateLimitError as exc:
        raise RateLimitError() from exc
    except openai.APIConnectionError as exc:
        raise NetworkError(f"Network error: {exc}") from exc
    except openai.APIStatusError as exc:
        raise ProviderError(f"API error: HTTP {exc.status_code}") from exc
    except openai.OpenAIError as exc:
        raise ProviderError(f"API error: {exc}") from exc


class OpenAIClient(LLMClient):
    """Client for OpenAI or OpenAI-compatible APIs."""

    provider_id = "openai"
    display_name = "OpenAI"
    fallback_models = ("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo")

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        request_timeout: float = 120.0,
    ) -> None:
        super().__init__(request_timeout=request_timeout)
        self.api_key = api_key
        self.base_url = base_url
        self._client: OpenAI | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> OpenAI:
        if not self.api_key:
            raise AuthError(f"{self.display_name} API key not found.")
        if self._client is None:
            kwargs: dict[str, str] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        client = self._get_client()
        with _translate_errors(self.display_name):
            stream = client.chat.completions.create(
                model=model,
                messages=list(messages),
                timeout=self.request_timeout,
                stream=True,
            )
            with stream:
                for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    if delta.content:
                        yield delta.content
        _LOGGER.debug("%s stream for %s finished", self.display_name, model)


class GroqClient(OpenAIClient):
    """Groq serves an OpenAI-compatible endpoint."""

    provider_id = "groq"
    display_name = "Groq"
    fallback_models = ("llama-3.1-8b-instant", "llama-3.3-70b-versatile", "mixtral-8x7b-32768")

    def __init__(self, api_key: Optional[str] = None, request_timeout: float = 120.0) -> None:
        super().__init__(
            api_key=api_key,
            base_url="https://api.groq.com/openai/v1",
            request_timeout=request_timeout,
        )
