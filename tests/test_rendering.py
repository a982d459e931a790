import pytest

from chatdesk.rendering import Block, render, strip_think_blocks


def test_plain_text_is_one_block():
    assert render("Hello **world**") == [Block("text", "Hello **world**")]


def test_think_block_is_split_out():
    blocks = render("<think>\nadd them\n</think>\n\nThe answer is 4.")

    assert blocks == [Block("think", "add them"), Block("text", "The answer is 4.")]


def test_unterminated_think_block_is_open():
    blocks = render("Sure. <think>still reason")

    assert blocks == [Block("text", "Sure. "), Block("think", "still reason", closed=False)]


@pytest.mark.parametrize("text", ["", "   ", "<think>", "</think>", "<think></think>", "a</think>b<think>"])
def test_render_never_raises(text):
    assert isinstance(render(text), list)


def test_strip_think_blocks_keeps_only_answer():
    assert strip_think_blocks("<think>hmm</think>Title here") == "Title here"
    assert strip_think_blocks("<think>never closed") == ""
