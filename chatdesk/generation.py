"""Streaming generation lifecycle: send, cancel, regenerate and edit-and-resend.

One :class:`GenerationController` is shared by every surface that shows a
conversation. Each request runs on its own worker thread which consumes the
provider's fragment iterator; every mutation of a conversation happens under
``conversation.lock`` so fragments, terminal transitions and user operations
never interleave.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from .config import ChatConfig, config
from .conversation import Conversation, Turn, TurnStatus, turns_to_messages
from .errors import (
    ChatError,
    GenerationInProgressError,
    NoModelSelected,
    PersistenceError,
    describe,
)

_LOGGER = logging.getLogger(__name__)


class FragmentSource(Protocol):
    def send_chat(self, provider_id: str, model_id: str, messages: Iterable[dict[str, str]]) -> Iterable[str]:
        ...


class SnapshotStore(Protocol):
    def save(self, conversations: Iterable[Conversation]) -> None:
        ...


class GenerationEventType(str, Enum):
    STARTED = "started"
    FRAGMENT = "fragment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    PERSISTENCE_FAILED = "persistence_failed"


@dataclass(frozen=True)
class GenerationEvent:
    type: GenerationEventType
    conversation_id: str
    turn_id: str
    fragment: str = ""
    message: str = ""


Listener = Callable[[GenerationEvent], None]


def format_context_message(question: str, context: str) -> str:
    """User-visible content for a question asked about selected text."""

    return f'**Selected text:** "{context}"\n\n**Question:** {question}'


def context_system_prompt(context: str) -> str:
    return (
        f'The user has selected this text: "{context}". Please analyze this text and answer '
        "their question in relation to it. Reference specific parts of the selected text when relevant."
    )


class GenerationHandle:
    """A single in-flight request for one assistant turn."""

    def __init__(self, conversation_id: str, turn_id: str) -> None:
        self.conversation_id = conversation_id
        self.turn_id = turn_id
        self.thread: threading.Thread | None = None
        self._cancel = threading.Event()
        self._done = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker to finish; return whether it did."""

        return self._done.wait(timeout)

    def __repr__(self) -> str:
        state = "done" if self.done else "cancelled" if self.cancelled else "running"
        return f"GenerationHandle(conversation={self.conversation_id!r}, turn={self.turn_id!r}, {state})"


class GenerationController:
    """Turns user actions into provider requests and streams the results into turns."""

    def __init__(
        self,
        gateway: FragmentSource,
        store: SnapshotStore | None = None,
        settings: ChatConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._settings = settings or config.chat
        self._handles: Dict[str, GenerationHandle] = {}
        self._handles_lock = threading.Lock()
        self._listeners: List[Listener] = []

    # -- observation -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for generation events; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: GenerationEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _LOGGER.exception("Generation listener failed on %s event", event.type.value)

    def active_handle(self, conversation: Conversation) -> Optional[GenerationHandle]:
        with self._handles_lock:
            return self._handles.get(conversation.id)

    def is_generating(self, conversation: Conversation) -> bool:
        return self.active_handle(conversation) is not None

    # -- persistence -----------------------------------------------------

    def persist(self, conversation: Conversation) -> None:
        """Snapshot ``conversation``; failures are logged and reported, never raised."""

        if self._store is None:
            return
        try:
            self._store.save([conversation])
        except PersistenceError as exc:
            _LOGGER.exception("Failed to save conversation %s", conversation.id)
            self._emit(
                GenerationEvent(
                    GenerationEventType.PERSISTENCE_FAILED,
                    conversation.id,
                    "",
                    message=exc.message,
                )
            )

    # -- operations ------------------------------------------------------

    def send(
        self,
        conversation: Conversation,
        user_text: str,
        context_text: str | None = None,
    ) -> Optional[GenerationHandle]:
        """Append a user turn and stream a fresh assistant turn after it.

        Returns ``None`` when no model is selected; the conversation then ends
        with a failed assistant turn explaining why.
        """

        text = user_text.strip()
        if not text:
            raise ValueError("Cannot send an empty message")
        context = (context_text or "").strip()

        with conversation.lock:
            self._ensure_idle(conversation)
            window = self._settings.history_window
            history = conversation.turns[-window:] if window > 0 else []
            content = format_context_message(text, context) if context else text
            conversation.add_turn(
                Turn.user(content),
                title_length=self._settings.title_length,
                title_text=text,
            )

            if not conversation.model_id:
                self._append_no_model(conversation)
                return None

            messages: List[dict[str, str]] = []
            if context:
                messages.append({"role": "system", "content": context_system_prompt(context)})
            messages.extend(turns_to_messages(history))
            messages.append({"role": "user", "content": text})

            turn = conversation.add_turn(Turn.assistant())
            self.persist(conversation)
            return self._start(conversation, turn, messages)

    def regenerate(self, conversation: Conversation, assistant_turn_id: str) -> Optional[GenerationHandle]:
        """Stream a new alternate response into an existing assistant turn."""

        with conversation.lock:
            index = conversation.index_of(assistant_turn_id)
            turn = conversation.turns[index]
            if turn.is_user:
                raise ValueError("Only assistant turns can be regenerated")
            if turn.is_generating:
                raise GenerationInProgressError()
            self._ensure_idle(conversation)

            turn.begin_response()
            conversation.touch()
            if not conversation.model_id:
                turn.fail(NoModelSelected().message)
                self.persist(conversation)
                return None

            messages = turns_to_messages(conversation.turns[:index])
            self.persist(conversation)
            return self._start(conversation, turn, messages)

    def edit_and_resend(
        self,
        conversation: Conversation,
        user_turn_id: str,
        new_text: str,
    ) -> Optional[GenerationHandle]:
        """Rewrite a user turn, drop everything after it and answer it again."""

        text = new_text.strip()
        if not text:
            raise ValueError("Cannot send an empty message")

        with conversation.lock:
            index = conversation.index_of(user_turn_id)
            turn = conversation.turns[index]
            if not turn.is_user:
                raise ValueError("Only user turns can be edited")

            self.cancel(conversation)
            turn.set_text(text)
            removed = conversation.truncate_after(index)
            _LOGGER.debug("Edit of turn %s discarded %d later turns", user_turn_id, len(removed))

            if not conversation.model_id:
                self._append_no_model(conversation)
                return None

            window = self._settings.history_window
            start = max(0, index - window) if window > 0 else index
            messages = turns_to_messages(conversation.turns[start:index + 1])
            assistant = conversation.add_turn(Turn.assistant())
            self.persist(conversation)
            return self._start(conversation, assistant, messages)

    def cancel(self, conversation: Conversation) -> bool:
        """Stop the conversation's active generation, keeping its partial text.

        Returns ``False`` when nothing was generating.
        """

        with self._handles_lock:
            handle = self._handles.get(conversation.id)
        if handle is None:
            return False
        handle._cancel.set()

        with conversation.lock:
            changed = False
            try:
                turn = conversation.get_turn(handle.turn_id)
            except KeyError:
                turn = None
            if turn is not None and turn.is_generating:
                turn.finish(TurnStatus.CANCELLED)
                conversation.touch()
                changed = True
            self._release(handle)
            if changed:
                self.persist(conversation)

        if changed:
            _LOGGER.debug("Cancelled generation for turn %s", handle.turn_id)
            self._emit(GenerationEvent(GenerationEventType.CANCELLED, conversation.id, handle.turn_id))
        return changed

    # -- internals -------------------------------------------------------

    def _ensure_idle(self, conversation: Conversation) -> None:
        if self.is_generating(conversation):
            raise GenerationInProgressError()

    def _append_no_model(self, conversation: Conversation) -> None:
        conversation.add_turn(Turn.assistant(NoModelSelected().message, status=TurnStatus.FAILED))
        _LOGGER.info("Send rejected for conversation %s: no model selected", conversation.id)
        self.persist(conversation)

    def _release(self, handle: GenerationHandle) -> None:
        with self._handles_lock:
            if self._handles.get(handle.conversation_id) is handle:
                del self._handles[handle.conversation_id]

    def _start(
        self,
        conversation: Conversation,
        turn: Turn,
        messages: List[dict[str, str]],
    ) -> GenerationHandle:
        handle = GenerationHandle(conversation.id, turn.id)
        with self._handles_lock:
            self._handles[conversation.id] = handle
        handle.thread = threading.Thread(
            target=self._run,
            args=(handle, conversation, turn, messages),
            name=f"generation-{conversation.id[:8]}",
            daemon=True,
        )
        _LOGGER.debug(
            "Starting generation for turn %s with %s/%s (%d messages)",
            turn.id,
            conversation.provider_id,
            conversation.model_id,
            len(messages),
        )
        self._emit(GenerationEvent(GenerationEventType.STARTED, conversation.id, turn.id))
        handle.thread.start()
        return handle

    def _run(
        self,
        handle: GenerationHandle,
        conversation: Conversation,
        turn: Turn,
        messages: List[dict[str, str]],
    ) -> None:
        stream = None
        applied = 0
        interval = self._settings.persist_interval
        try:
            stream = self._gateway.send_chat(conversation.provider_id, conversation.model_id, messages)
            for fragment in stream:
                with conversation.lock:
                    if handle.cancelled:
                        break
                    turn.append_fragment(fragment)
                    applied += 1
                    # under the lock so a cancelled or deleted chat is never rewritten
                    if interval > 0 and applied % interval == 0:
                        self.persist(conversation)
                self._emit(
                    GenerationEvent(GenerationEventType.FRAGMENT, conversation.id, turn.id, fragment=fragment)
                )
            else:
                self._complete(handle, conversation, turn)
        except ChatError as exc:
            _LOGGER.warning("Generation for turn %s failed: %s", turn.id, exc.message)
            self._fail(handle, conversation, turn, exc)
        except Exception as exc:
            _LOGGER.exception("Unexpected failure while generating turn %s", turn.id)
            self._fail(handle, conversation, turn, exc)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                try:
                    close()
                except Exception:
                    _LOGGER.debug("Error while closing provider stream", exc_info=True)
            self._release(handle)
            handle._done.set()

    def _complete(self, handle: GenerationHandle, conversation: Conversation, turn: Turn) -> None:
        with conversation.lock:
            if handle.cancelled:
                return
            turn.finish(TurnStatus.COMPLETED)
            conversation.touch()
            self._release(handle)
            self.persist(conversation)
        _LOGGER.debug("Completed turn %s (%d characters)", turn.id, len(turn.text))
        self._emit(GenerationEvent(GenerationEventType.COMPLETED, conversation.id, turn.id))

    def _fail(
        self,
        handle: GenerationHandle,
        conversation: Conversation,
        turn: Turn,
        exc: BaseException,
    ) -> None:
        message = describe(exc)
        with conversation.lock:
            if handle.cancelled:
                return
            turn.fail(message)
            conversation.touch()
            self._release(handle)
            self.persist(conversation)
        self._emit(GenerationEvent(GenerationEventType.FAILED, conversation.id, turn.id, message=message))
