import pytest

from chatdesk.conversation import (
    DEFAULT_TITLE,
    Conversation,
    Role,
    Turn,
    TurnStatus,
    make_title,
    turns_to_messages,
)


def test_new_assistant_turn_starts_with_one_empty_entry():
    turn = Turn.assistant()

    assert turn.responses == [""]
    assert turn.current_index == 0
    assert turn.is_generating


def test_begin_response_appends_and_selects():
    turn = Turn.assistant("first", status=TurnStatus.COMPLETED)

    index = turn.begin_response()
    turn.append_fragment("sec")
    turn.append_fragment("ond")

    assert index == 1
    assert turn.responses == ["first", "second"]
    assert turn.text == "second"
    assert turn.is_generating


def test_select_response_bounds():
    turn = Turn.assistant("a", status=TurnStatus.COMPLETED)
    turn.begin_response()
    turn.append_fragment("b")

    turn.select_response(0)
    assert turn.text == "a"
    with pytest.raises(IndexError):
        turn.select_response(2)
    with pytest.raises(IndexError):
        turn.select_response(-1)
    assert turn.current_index == 0


def test_user_turns_have_a_single_version():
    turn = Turn.user("hello")

    turn.set_text("hello again")

    assert turn.responses == ["hello again"]
    with pytest.raises(ValueError):
        turn.begin_response()
    with pytest.raises(ValueError):
        Turn.assistant("x").set_text("y")


def test_fail_replaces_current_version_only():
    turn = Turn.assistant("kept", status=TurnStatus.COMPLETED)
    turn.begin_response()
    turn.append_fragment("half")

    turn.fail("Error: boom")

    assert turn.responses == ["kept", "Error: boom"]
    assert turn.status is TurnStatus.FAILED


def test_clear_responses_resets_assistant_turn():
    turn = Turn.assistant("a", status=TurnStatus.COMPLETED)

    turn.clear_responses()

    assert turn.responses == []
    assert turn.text == ""


def test_generating_turn_is_stored_as_failed():
    turn = Turn.assistant()
    turn.append_fragment("partial")

    data = turn.to_dict()
    restored = Turn.from_dict(data)

    assert data["status"] == "failed"
    assert restored.status is TurnStatus.FAILED
    assert restored.text == "partial"


def test_from_dict_repairs_out_of_range_index():
    restored = Turn.from_dict({"role": "assistant", "responses": ["a", "b"], "current_index": 7})

    assert restored.current_index == 1
    assert restored.text == "b"


def test_conversation_round_trips_through_dict():
    conversation = Conversation(provider_id="ollama", model_id="llama3")
    conversation.add_turn(Turn.user("hi"))
    reply = conversation.add_turn(Turn.assistant("one", status=TurnStatus.COMPLETED))
    reply.begin_response()
    reply.append_fragment("two")
    reply.finish(TurnStatus.COMPLETED)
    reply.select_response(0)

    restored = Conversation.from_dict(conversation.to_dict())

    assert restored == conversation
    assert restored.turns[1].responses == ["one", "two"]
    assert restored.turns[1].current_index == 0


def test_first_user_message_names_the_conversation():
    conversation = Conversation()
    assert conversation.title == DEFAULT_TITLE

    conversation.add_turn(Turn.user("x" * 60), title_length=50)
    conversation.add_turn(Turn.user("second message"))

    assert conversation.title == "x" * 50 + "..."


def test_truncate_after_drops_later_turns():
    conversation = Conversation()
    turns = [conversation.add_turn(Turn.user(str(i))) for i in range(4)]

    removed = conversation.truncate_after(1)

    assert conversation.turns == turns[:2]
    assert removed == turns[2:]
    with pytest.raises(KeyError):
        conversation.index_of(turns[3].id)


def test_turns_to_messages_skips_failed_and_empty_replies():
    turns = [
        Turn.user("q1"),
        Turn.assistant("Error: nope", status=TurnStatus.FAILED),
        Turn.user("q2"),
        Turn.assistant("", status=TurnStatus.CANCELLED),
        Turn.user("q3"),
        Turn.assistant("answer", status=TurnStatus.COMPLETED),
    ]

    assert turns_to_messages(turns) == [
        {"role": "user", "content": "q1"},
        {"role": "user", "content": "q2"},
        {"role": "user", "content": "q3"},
        {"role": "assistant", "content": "answer"},
    ]


def test_make_title_collapses_whitespace():
    assert make_title("  hello\n  world ") == "hello world"
    assert make_title("   ") == DEFAULT_TITLE
    assert Role("user") is Role.USER
