"""Split model output into regular text and ``<think>`` reasoning blocks."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

_OPEN_TAG = "<think>"
_CLOSE_TAG = "</think>"


@dataclass(frozen=True, slots=True)
class Block:
    """A piece of rendered content.

    ``kind`` is ``"text"`` for regular markdown or ``"think"`` for reasoning.
    ``closed`` is False for a think block whose closing tag has not streamed in
    yet.
    """

    kind: str
    content: str
    closed: bool = True


def render(text: str) -> List[Block]:
    """Return the blocks of ``text`` in order.

    Pure and total: unterminated think blocks run to the end of the text, stray
    closing tags are kept as regular text.
    """

    blocks: List[Block] = []
    position = 0
    while position < len(text):
        start = text.find(_OPEN_TAG, position)
        if start == -1:
            _append_text(blocks, text[position:])
            break
        _append_text(blocks, text[position:start])
        body_start = start + len(_OPEN_TAG)
        end = text.find(_CLOSE_TAG, body_start)
        if end == -1:
            blocks.append(Block("think", text[body_start:].strip(), closed=False))
            break
        blocks.append(Block("think", text[body_start:end].strip()))
        position = end + len(_CLOSE_TAG)
    return blocks


def _append_text(blocks: List[Block], segment: str) -> None:
    if segment.strip():
        blocks.append(Block("text", segment.strip("\n")))


def strip_think_blocks(text: str) -> str:
    """Return only the regular text of ``text``."""

    return "\n\n".join(block.content for block in render(text) if block.kind == "text").strip()
