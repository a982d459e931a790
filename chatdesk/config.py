"""Application configuration management."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(slots=True)
class ProviderConfig:
    """Configuration for the text-generation providers."""

    default_provider: str = os.getenv("CHAT_PROVIDER", "ollama").lower()
    default_model: str = os.getenv("CHAT_MODEL", "")
    request_timeout: float = float(os.getenv("CHAT_TIMEOUT", "120"))
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_base_url: Optional[str] = os.getenv("OPENAI_BASE_URL")
    groq_api_key: Optional[str] = os.getenv("GROQ_API_KEY")
    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")


@dataclass(slots=True)
class StorageConfig:
    """Configuration for the conversation store."""

    database_path: str = os.getenv("CHAT_DB_PATH", "./data/conversations.sqlite")


@dataclass(slots=True)
class ChatConfig:
    """Conversation and generation tuning options."""

    history_window: int = int(os.getenv("CHAT_HISTORY_WINDOW", "6"))
    persist_interval: int = int(os.getenv("CHAT_PERSIST_INTERVAL", "20"))
    title_length: int = 50
    generated_title_length: int = 80


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration."""

    providers: ProviderConfig = field(default_factory=ProviderConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)


config = AppConfig()
