import threading
from typing import Iterable, Iterator, List, Sequence, Union

import pytest

from chatdesk.config import AppConfig, ChatConfig, ProviderConfig, StorageConfig
from chatdesk.generation import GenerationController
from chatdesk.llm.base import LLMClient, Model
from chatdesk.llm.gateway import ProviderGateway
from chatdesk.store import ConversationStore

Step = Union[str, BaseException]


class ScriptedClient(LLMClient):
    """Replays one scripted reply per request; exceptions in a script are raised."""

    provider_id = "fake"
    display_name = "Fake"
    requires_api_key = False
    fallback_models = ("fake-small", "fake-large")

    def __init__(self, scripts: Sequence[Sequence[Step]] = ()) -> None:
        super().__init__()
        self.scripts: List[Sequence[Step]] = list(scripts)
        self.requests: List[List[dict[str, str]]] = []
        self.closed = 0

    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        self.requests.append(list(messages))
        script = self.scripts.pop(0) if self.scripts else []
        try:
            for step in script:
                if isinstance(step, BaseException):
                    raise step
                yield step
        finally:
            self.closed += 1


class GatedClient(LLMClient):
    """Yields one fragment each time the test calls :meth:`release`."""

    provider_id = "fake"
    display_name = "Fake"
    requires_api_key = False

    def __init__(self, fragments: Sequence[str]) -> None:
        super().__init__()
        self.fragments = list(fragments)
        self.requested = threading.Event()
        self.closed = threading.Event()
        self.yielded = threading.Semaphore(0)
        self._gate = threading.Semaphore(0)

    def release(self, count: int = 1) -> None:
        for _ in range(count):
            self._gate.release()

    def wait_yielded(self, count: int = 1, timeout: float = 5.0) -> None:
        for _ in range(count):
            assert self.yielded.acquire(timeout=timeout), "fragment was not consumed in time"

    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        self.requested.set()
        try:
            for fragment in self.fragments:
                assert self._gate.acquire(timeout=5.0), "test never released the next fragment"
                yield fragment
                self.yielded.release()
        finally:
            self.closed.set()


class ChainClient(LLMClient):
    """Hands each new request to the next client in line."""

    provider_id = "fake"
    display_name = "Fake"
    requires_api_key = False

    def __init__(self, *clients: LLMClient) -> None:
        super().__init__()
        self.clients = list(clients)
        self._lock = threading.Lock()

    def stream_chat(self, model: str, messages: Iterable[dict[str, str]]) -> Iterator[str]:
        with self._lock:
            client = self.clients.pop(0)
        return client.stream_chat(model, messages)


def gateway_for(client: LLMClient) -> ProviderGateway:
    return ProviderGateway({client.provider_id: client})


@pytest.fixture
def chat_settings() -> ChatConfig:
    return ChatConfig(history_window=6, persist_interval=2, title_length=50, generated_title_length=80)


@pytest.fixture
def app_settings(tmp_path, chat_settings) -> AppConfig:
    return AppConfig(
        providers=ProviderConfig(default_provider="fake", default_model="fake-small"),
        storage=StorageConfig(database_path=str(tmp_path / "chats.sqlite")),
        chat=chat_settings,
    )


@pytest.fixture
def store(tmp_path) -> ConversationStore:
    return ConversationStore(tmp_path / "chats.sqlite")


@pytest.fixture
def make_controller(store, chat_settings):
    def _make(client: LLMClient) -> GenerationController:
        return GenerationController(gateway_for(client), store, chat_settings)

    return _make


@pytest.fixture
def fake_model() -> Model:
    return Model(name="fake-small", provider_id="fake")
