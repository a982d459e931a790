"""Named commands for hotkeys and the command palette."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from .conversation import Turn
from .session import SessionManager

_LOGGER = logging.getLogger(__name__)

Command = Callable[..., Any]


def _last_assistant_turn(session: SessionManager) -> Turn | None:
    for turn in reversed(session.active.turns):
        if not turn.is_user:
            return turn
    return None


def _regenerate(session: SessionManager, turn_id: str | None = None) -> Any:
    if turn_id is None:
        turn = _last_assistant_turn(session)
        if turn is None:
            return None
        turn_id = turn.id
    return session.regenerate(turn_id)


def _page(step: int) -> Command:
    def _select(session: SessionManager, turn_id: str | None = None) -> Turn | None:
        turn = session.active.get_turn(turn_id) if turn_id else _last_assistant_turn(session)
        if turn is None or turn.is_user:
            return None
        index = turn.current_index + step
        if not 0 <= index < len(turn.responses):
            return turn
        return session.select_response(turn.id, index)

    return _select


COMMANDS: Dict[str, Command] = {
    "new_chat": lambda session: session.new_conversation(),
    "stop": lambda session: session.cancel(),
    "regenerate": _regenerate,
    "previous_response": _page(-1),
    "next_response": _page(1),
    "delete_chat": lambda session, conversation_id=None: session.delete(conversation_id or session.active.id),
    "clear_history": lambda session: session.clear_all(),
}


def dispatch(session: SessionManager, command: str, **kwargs: Any) -> Any:
    """Run ``command`` against ``session``; unknown names raise ``KeyError``."""

    try:
        handler = COMMANDS[command]
    except KeyError:
        raise KeyError(f"Unknown command: {command}") from None
    _LOGGER.debug("Dispatching command %s", command)
    return handler(session, **kwargs)
