"""Session management: the set of conversations and which one is active."""
from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

from .config import AppConfig, config
from .conversation import Conversation, Turn
from .errors import ChatError, PersistenceError, ProviderError
from .generation import GenerationController, GenerationHandle
from .llm.base import Model
from .llm.gateway import ProviderGateway
from .rendering import strip_think_blocks
from .store import ConversationStore

_LOGGER = logging.getLogger(__name__)

_TITLE_PROMPT = """Generate a concise, descriptive title (maximum {limit} characters) for a chat conversation based on this first message:

"{message}"

The title should be:
- Descriptive and relevant to the conversation topic
- Maximum {limit} characters
- Professional and clear
- No quotes or special formatting

Title:"""


def _clean_title(raw: str, limit: int) -> str:
    title = strip_think_blocks(raw).replace("</think>", "")
    title = " ".join(title.split())
    title = title.replace('"', "").replace("'", "").strip()
    if len(title) > limit:
        title = title[: limit - 3] + "..."
    return title


class SessionManager:
    """Owns every conversation and exactly one active conversation.

    All surfaces share the manager's single :class:`GenerationController`.
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        store: ConversationStore | None = None,
        settings: AppConfig | None = None,
        controller: GenerationController | None = None,
    ) -> None:
        self.settings = settings or config
        self.gateway = gateway
        self.store = store
        self.controller = controller or GenerationController(gateway, store, self.settings.chat)
        self.default_provider = self.settings.providers.default_provider
        self.default_model = self.settings.providers.default_model
        self._conversations: List[Conversation] = []
        self._active_id: str | None = None
        self._lock = threading.RLock()
        self._load()

    @classmethod
    def from_config(cls, settings: AppConfig | None = None) -> "SessionManager":
        settings = settings or config
        gateway = ProviderGateway.from_config(settings.providers)
        store = ConversationStore(settings.storage.database_path)
        return cls(gateway, store, settings)

    def _load(self) -> None:
        loaded: List[Conversation] = []
        if self.store is not None:
            try:
                loaded = self.store.load()
            except PersistenceError:
                _LOGGER.exception("Unable to load saved conversations; starting fresh")
        with self._lock:
            self._conversations = sorted(loaded, key=lambda item: item.updated_at, reverse=True)
            if self._conversations:
                self._active_id = self._conversations[0].id
                _LOGGER.info("Loaded %d conversations", len(self._conversations))
            else:
                self._activate_new()

    # -- queries ---------------------------------------------------------

    @property
    def conversations(self) -> List[Conversation]:
        with self._lock:
            return list(self._conversations)

    @property
    def active(self) -> Conversation:
        with self._lock:
            return self.get(self._active_id or "")

    def get(self, conversation_id: str) -> Conversation:
        with self._lock:
            for conversation in self._conversations:
                if conversation.id == conversation_id:
                    return conversation
        raise KeyError(f"Unknown conversation: {conversation_id}")

    def is_generating(self) -> bool:
        return self.controller.is_generating(self.active)

    def list_models(self, provider_id: str) -> List[Model]:
        return self.gateway.list_models(provider_id)

    # -- session operations ----------------------------------------------

    def _activate_new(self) -> Conversation:
        conversation = Conversation(provider_id=self.default_provider, model_id=self.default_model)
        self._conversations.insert(0, conversation)
        self._active_id = conversation.id
        return conversation

    def new_conversation(self) -> Conversation:
        """Start a new chat, reusing the active one when it is still empty."""

        with self._lock:
            current = self.active
            self.controller.cancel(current)
            if not current.turns:
                return current
            conversation = self._activate_new()
        _LOGGER.info("Started conversation %s", conversation.id)
        return conversation

    def switch_to(self, conversation_id: str) -> Conversation:
        with self._lock:
            target = self.get(conversation_id)
            current = self.active
            if target is not current:
                self.controller.cancel(current)
                if not current.turns:
                    self._conversations.remove(current)
                self._active_id = target.id
        _LOGGER.info("Switched to conversation %s", conversation_id)
        return target

    def delete(self, conversation_id: str) -> None:
        with self._lock:
            conversation = self.get(conversation_id)
            self.controller.cancel(conversation)
            self._conversations.remove(conversation)
            if self._active_id == conversation_id:
                if self._conversations:
                    self._active_id = self._conversations[0].id
                else:
                    self._activate_new()
        if self.store is not None:
            try:
                self.store.delete(conversation_id)
            except PersistenceError:
                _LOGGER.exception("Failed to delete conversation %s from storage", conversation_id)
        _LOGGER.info("Deleted conversation %s", conversation_id)

    def clear_all(self) -> None:
        with self._lock:
            for conversation in self._conversations:
                self.controller.cancel(conversation)
            self._conversations.clear()
            self._activate_new()
        if self.store is not None:
            try:
                self.store.clear()
            except PersistenceError:
                _LOGGER.exception("Failed to clear stored conversations")
        _LOGGER.info("Cleared all conversations")

    def select_model(self, provider_id: str, model_id: str) -> None:
        """Use ``provider_id``/``model_id`` for the active and future conversations."""

        self.default_provider = provider_id
        self.default_model = model_id
        conversation = self.active
        with conversation.lock:
            conversation.provider_id = provider_id
            conversation.model_id = model_id
            if conversation.turns:
                conversation.touch()
                self.controller.persist(conversation)

    # -- generation on the active conversation ---------------------------

    def _bring_to_front(self, conversation: Conversation) -> None:
        with self._lock:
            if self._conversations and self._conversations[0] is not conversation:
                self._conversations.remove(conversation)
                self._conversations.insert(0, conversation)

    def send(self, user_text: str, context_text: str | None = None) -> Optional[GenerationHandle]:
        conversation = self.active
        handle = self.controller.send(conversation, user_text, context_text)
        self._bring_to_front(conversation)
        return handle

    def regenerate(self, assistant_turn_id: str) -> Optional[GenerationHandle]:
        return self.controller.regenerate(self.active, assistant_turn_id)

    def edit_and_resend(self, user_turn_id: str, new_text: str) -> Optional[GenerationHandle]:
        return self.controller.edit_and_resend(self.active, user_turn_id, new_text)

    def cancel(self) -> bool:
        return self.controller.cancel(self.active)

    def select_response(self, turn_id: str, index: int) -> Turn:
        """Show another version of an assistant turn and remember the choice."""

        conversation = self.active
        with conversation.lock:
            turn = conversation.get_turn(turn_id)
            if turn.is_generating:
                raise ValueError("Cannot switch versions while a response is streaming")
            turn.select_response(index)
            conversation.touch()
            self.controller.persist(conversation)
        return turn

    # -- export ----------------------------------------------------------

    def export(self, conversation_id: str | None = None) -> str:
        """Render a conversation as a markdown transcript."""

        conversation = self.get(conversation_id) if conversation_id else self.active
        try:
            provider = self.gateway.client(conversation.provider_id).display_name
        except ProviderError:
            provider = conversation.provider_id
        created = time.strftime("%b %d, %Y at %I:%M %p", time.localtime(conversation.created_at))
        with conversation.lock:
            lines = [
                f"# {conversation.title}\n",
                f"Provider: {provider}\n",
                f"Model: {conversation.model_id}\n",
                f"Created: {created}\n\n",
            ]
            for turn in conversation.turns:
                role = "**You**" if turn.is_user else "**Assistant**"
                lines.append(f"{role}: {turn.text}\n\n")
        return "".join(lines)

    # -- titles ----------------------------------------------------------

    def generate_title(self, conversation_id: str | None = None) -> str:
        """Ask the conversation's model for a short title.

        Any provider error leaves the current title in place.
        """

        conversation = self.get(conversation_id) if conversation_id else self.active
        limit = self.settings.chat.generated_title_length
        with conversation.lock:
            first_user = next((turn for turn in conversation.turns if turn.is_user), None)
            provider_id, model_id = conversation.provider_id, conversation.model_id
        if first_user is None or not model_id:
            return conversation.title

        prompt = _TITLE_PROMPT.format(limit=limit, message=first_user.text)
        try:
            raw = self.gateway.complete(
                provider_id,
                model_id,
                [{"role": "user", "content": prompt}],
                max_chars=limit * 4,
            )
        except ChatError as exc:
            _LOGGER.warning("Failed to generate title for %s: %s", conversation.id, exc.message)
            return conversation.title

        title = _clean_title(raw, limit)
        if not title:
            return conversation.title
        with conversation.lock:
            conversation.title = title
            conversation.touch()
            self.controller.persist(conversation)
        return title


def create_session(settings: AppConfig | None = None) -> SessionManager:
    return SessionManager.from_config(settings)


