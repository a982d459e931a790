"""Conversation, turn and response-set data model."""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

DEFAULT_TITLE = "New Chat"


def _new_id() -> str:
    return uuid.uuid4().hex


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TurnStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class Turn:
    """A single message in the conversation.

    ``responses`` holds every version of the turn. User turns always have
    exactly one entry; assistant turns gain one entry per regeneration.
    ``text`` is whichever entry ``current_index`` points at.
    """

    role: Role
    responses: List[str] = field(default_factory=list)
    current_index: int = 0
    status: TurnStatus = TurnStatus.IDLE
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=time.time)

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(role=Role.USER, responses=[text])

    @classmethod
    def assistant(cls, text: str = "", *, status: TurnStatus = TurnStatus.GENERATING) -> "Turn":
        return cls(role=Role.ASSISTANT, responses=[text], status=status)

    @property
    def text(self) -> str:
        if not self.responses:
            return ""
        return self.responses[self.current_index]

    @property
    def is_user(self) -> bool:
        return self.role is Role.USER

    @property
    def is_generating(self) -> bool:
        return self.status is TurnStatus.GENERATING

    def set_text(self, text: str) -> None:
        """Replace a user turn's content in place."""

        if not self.is_user:
            raise ValueError("Only user turns can be edited")
        self.responses = [text]
        self.current_index = 0

    def begin_response(self) -> int:
        """Start a new, empty version and make it the visible one."""

        if self.is_user:
            raise ValueError("User turns have a single version")
        self.responses.append("")
        self.current_index = len(self.responses) - 1
        self.status = TurnStatus.GENERATING
        return self.current_index

    def append_fragment(self, fragment: str) -> None:
        if not self.responses:
            self.responses.append("")
            self.current_index = 0
        self.responses[self.current_index] += fragment

    def finish(self, status: TurnStatus) -> None:
        self.status = status

    def fail(self, message: str) -> None:
        """Replace the version being generated with an error description."""

        if not self.responses:
            self.responses.append(message)
            self.current_index = 0
        else:
            self.responses[self.current_index] = message
        self.status = TurnStatus.FAILED

    def select_response(self, index: int) -> None:
        if not 0 <= index < len(self.responses):
            raise IndexError(f"Response index {index} out of range for {len(self.responses)} responses")
        self.current_index = index

    def clear_responses(self) -> None:
        if self.is_user:
            return
        self.responses.clear()
        self.current_index = 0
        self.status = TurnStatus.IDLE

    def to_dict(self) -> dict[str, object]:
        status = self.status
        # A stream cannot survive a restart, so it is stored as already failed.
        if status is TurnStatus.GENERATING:
            status = TurnStatus.FAILED
        return {
            "id": self.id,
            "role": self.role.value,
            "created_at": self.created_at,
            "text": self.text,
            "responses": list(self.responses),
            "current_index": self.current_index,
            "status": status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Turn":
        role = Role(str(data.get("role", Role.USER.value)))
        responses = [str(item) for item in data.get("responses") or []]  # type: ignore[union-attr]
        if not responses:
            responses = [str(data.get("text", ""))]
        try:
            current_index = int(data.get("current_index", 0))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            current_index = 0
        if not 0 <= current_index < len(responses):
            current_index = len(responses) - 1
        try:
            status = TurnStatus(str(data.get("status", TurnStatus.IDLE.value)))
        except ValueError:
            status = TurnStatus.IDLE
        if status is TurnStatus.GENERATING:
            status = TurnStatus.FAILED
        return cls(
            role=role,
            responses=responses,
            current_index=current_index,
            status=status,
            id=str(data.get("id") or _new_id()),
            created_at=float(data.get("created_at") or time.time()),  # type: ignore[arg-type]
        )


def turns_to_messages(turns: Iterable[Turn]) -> List[dict[str, str]]:
    """Convert turns into provider messages, leaving out failed or empty replies."""

    messages: List[dict[str, str]] = []
    for turn in turns:
        if not turn.is_user and (turn.status is TurnStatus.FAILED or not turn.text):
            continue
        messages.append({"role": turn.role.value, "content": turn.text})
    return messages


@dataclass
class Conversation:
    """An ordered list of turns plus the provider and model used to answer them."""

    provider_id: str = ""
    model_id: str = ""
    title: str = DEFAULT_TITLE
    turns: List[Turn] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def touch(self) -> None:
        self.updated_at = time.time()

    def add_turn(self, turn: Turn, *, title_length: int = 50, title_text: str | None = None) -> Turn:
        """Append ``turn``; the first user turn names the conversation.

        ``title_text`` overrides the text the title is taken from.
        """

        if turn.is_user and self.title == DEFAULT_TITLE and not any(t.is_user for t in self.turns):
            self.title = make_title(title_text or turn.text, title_length)
        self.turns.append(turn)
        self.touch()
        return turn

    def index_of(self, turn_id: str) -> int:
        for index, turn in enumerate(self.turns):
            if turn.id == turn_id:
                return index
        raise KeyError(f"No turn {turn_id} in conversation {self.id}")

    def get_turn(self, turn_id: str) -> Turn:
        return self.turns[self.index_of(turn_id)]

    def truncate_after(self, index: int) -> List[Turn]:
        """Drop every turn after ``index`` and return what was removed."""

        if index < 0 or index >= len(self.turns):
            raise IndexError("Conversation turn index out of range")
        removed = self.turns[index + 1:]
        del self.turns[index + 1:]
        self.touch()
        return removed

    @property
    def generating_turn(self) -> Turn | None:
        for turn in reversed(self.turns):
            if turn.is_generating:
                return turn
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "provider_id": self.provider_id,
            "model_id": self.model_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "turns": [turn.to_dict() for turn in self.turns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Conversation":
        turns_raw = data.get("turns") or []
        turns = [Turn.from_dict(item) for item in turns_raw if isinstance(item, dict)]  # type: ignore[union-attr]
        created_at = float(data.get("created_at") or time.time())  # type: ignore[arg-type]
        return cls(
            provider_id=str(data.get("provider_id") or ""),
            model_id=str(data.get("model_id") or ""),
            title=str(data.get("title") or DEFAULT_TITLE),
            turns=turns,
            id=str(data.get("id") or _new_id()),
            created_at=created_at,
            updated_at=float(data.get("updated_at") or created_at),  # type: ignore[arg-type]
        )


def make_title(text: str, limit: int = 50) -> str:
    title = " ".join(text.split())
    if len(title) > limit:
        return title[:limit] + "..."
    return title or DEFAULT_TITLE
