import pytest

from chatdesk.commands import COMMANDS, dispatch
from chatdesk.session import SessionManager
from chatdesk.store import ConversationStore

from conftest import ScriptedClient, gateway_for


@pytest.fixture
def session(app_settings):
    client = ScriptedClient([["4"], ["It's 4."], ["Four."]])
    store = ConversationStore(app_settings.storage.database_path)
    return SessionManager(gateway_for(client), store, app_settings)


def _answer(session):
    handle = session.send("2+2?")
    assert handle.join(timeout=5.0)
    return session.active.turns[-1]


def test_command_names():
    assert set(COMMANDS) == {
        "new_chat",
        "stop",
        "regenerate",
        "previous_response",
        "next_response",
        "delete_chat",
        "clear_history",
    }


def test_unknown_command_raises_key_error(session):
    with pytest.raises(KeyError, match="Unknown command"):
        dispatch(session, "launch_rockets")


def test_regenerate_and_page_through_versions(session):
    reply = _answer(session)

    handle = dispatch(session, "regenerate")
    assert handle.join(timeout=5.0)
    assert reply.responses == ["4", "It's 4."]

    dispatch(session, "previous_response")
    assert reply.text == "4"
    dispatch(session, "previous_response")
    assert reply.current_index == 0
    dispatch(session, "next_response", turn_id=reply.id)
    assert reply.text == "It's 4."


def test_regenerate_without_reply_does_nothing(session):
    assert dispatch(session, "regenerate") is None
    assert dispatch(session, "next_response") is None


def test_stop_without_generation_returns_false(session):
    assert dispatch(session, "stop") is False


def test_chat_lifecycle_commands(session):
    _answer(session)
    first = session.active

    fresh = dispatch(session, "new_chat")
    assert session.active is fresh is not first

    dispatch(session, "delete_chat", conversation_id=first.id)
    assert [item.id for item in session.conversations] == [fresh.id]

    dispatch(session, "clear_history")
    assert len(session.conversations) == 1
    assert session.store.load() == []
