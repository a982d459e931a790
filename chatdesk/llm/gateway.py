"""Uniform access to every configured provider."""
from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Mapping, Optional

from ..config import ProviderConfig
from ..errors import AuthError, NoModelSelected, ProviderError
from .base import LLMClient, Model
from .factory import create_llm_clients

_LOGGER = logging.getLogger(__name__)


class ProviderGateway:
    """Route model listing and chat requests to the right :class:`LLMClient`.

    Callers only ever see ordered text fragments; whether they come from a
    local daemon or a hosted API is the client's business.
    """

    def __init__(self, clients: Mapping[str, LLMClient]) -> None:
        self._clients = dict(clients)

    @classmethod
    def from_config(cls, settings: ProviderConfig | None = None) -> "ProviderGateway":
        return cls(create_llm_clients(settings))

    @property
    def provider_ids(self) -> List[str]:
        return list(self._clients)

    def client(self, provider_id: str) -> LLMClient:
        try:
            return self._clients[provider_id]
        except KeyError:
            raise ProviderError(f"Unknown provider: {provider_id}") from None

    def available_providers(self) -> List[LLMClient]:
        """Providers that can be used right now (keys present where needed)."""

        return [
            client
            for client in self._clients.values()
            if not client.requires_api_key or client.is_configured
        ]

    def _ready_client(self, provider_id: str) -> LLMClient:
        client = self.client(provider_id)
        if client.requires_api_key and not client.is_configured:
            raise AuthError(f"{client.display_name} API key not found.")
        return client

    def list_models(self, provider_id: str) -> List[Model]:
        client = self._ready_client(provider_id)
        models = client.list_models()
        _LOGGER.debug("Provider %s offers %d models", provider_id, len(models))
        return models

    def send_chat(
        self,
        provider_id: str,
        model_id: str,
        messages: Iterable[dict[str, str]],
    ) -> Iterator[str]:
        """Return a lazy, closeable iterator of text fragments."""

        if not model_id:
            raise NoModelSelected()
        client = self._ready_client(provider_id)
        _LOGGER.debug("Opening %s stream with model %s", provider_id, model_id)
        return client.stream_chat(model_id, list(messages))

    def complete(
        self,
        provider_id: str,
        model_id: str,
        messages: Iterable[dict[str, str]],
        *,
        max_chars: Optional[int] = None,
    ) -> str:
        """Collect a whole reply, stopping early once ``max_chars`` arrived."""

        if not model_id:
            raise NoModelSelected()
        client = self._ready_client(provider_id)
        return client.complete(model_id, list(messages), max_chars=max_chars)
