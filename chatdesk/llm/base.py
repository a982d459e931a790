"""Base interfaces for LLM providers."""
from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional


@dataclass(frozen=True, slots=True)
class Model:
    """A model name scoped by the provider that serves it."""

    name: str
    provider_id: str
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.name


class LLMClient(abc.ABC):
    """Abstract base class for an LLM client.

    A client talks to one provider. The model is chosen per call so that a
    single client can serve every conversation that uses its provider.
    """

    provider_id: str = ""
    display_name: str = ""
    requires_api_key: bool = True
    fallback_models: tuple[str, ...] = ()

    def __init__(self, request_timeout: float = 120.0) -> None:
        self.request_timeout = request_timeout

    @property
    def is_configured(self) -> bool:
        """Whether the client has the credentials it needs to make requests."""

        return True

    @abc.abstractmethod
    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        """Yield text fragments of a chat completion in arrival order.

        Implementations must release their transport when the returned
        iterator is closed, so consumers can stop early with ``close()``.
        """

    def list_models(self) -> List[Model]:
        """Return the models this provider offers.

        The default implementation returns the static fallback list, which is
        what providers without a listing endpoint use.
        """

        return [Model(name=name, provider_id=self.provider_id) for name in self.fallback_models]

    def complete(self, model: str, messages: Iterable[dict[str, str]], *, max_chars: Optional[int] = None) -> str:
        """Collect a streamed completion into a single string."""

        parts: List[str] = []
        total = 0
        stream = self.stream_chat(model, messages)
        try:
            for fragment in stream:
                parts.append(fragment)
                total += len(fragment)
                if max_chars is not None and total >= max_chars:
                    break
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
        return "".join(parts)
