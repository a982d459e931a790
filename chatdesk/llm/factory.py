"""Factory for instantiating LLM clients based on configuration."""
from __future__ import annotations

from typing import Dict, Literal

from ..config import ProviderConfig, config
from .base import LLMClient
from .gemini_client import GeminiClient
from .ollama_client import OllamaClient
from .openai_client import GroqClient, OpenAIClient

Provider = Literal["openai", "groq", "gemini", "ollama"]


def create_llm_client(provider: Provider, settings: ProviderConfig | None = None) -> LLMClient:
    """Create the :class:`LLMClient` for ``provider``."""

    settings = settings or config.providers
    timeout = settings.request_timeout
    if provider == "openai":
        return OpenAIClient(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            request_timeout=timeout,
        )
    if provider == "groq":
        return GroqClient(api_key=settings.groq_api_key, request_timeout=timeout)
    if provider == "gemini":
        return GeminiClient(api_key=settings.gemini_api_key, request_timeout=timeout)
    if provider == "ollama":
        return OllamaClient(base_url=settings.ollama_base_url, request_timeout=timeout)
    raise ValueError(f"Unsupported LLM provider: {provider}")


def create_llm_clients(settings: ProviderConfig | None = None) -> Dict[str, LLMClient]:
    """Create one client per supported provider, keyed by provider id."""

    providers: tuple[Provider, ...] = ("ollama", "openai", "groq", "gemini")
    return {provider: create_llm_client(provider, settings) for provider in providers}
