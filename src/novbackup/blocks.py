from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

__all__ = [
    "Block",
    "parse_text_to_blocks",
    "empty_blocks",
    "serialize_blocks",
    "deserialize_blocks",
]

BLOCK_TYPE_TEXT = "text"
BLOCK_ALIGN_LEFT = "left"

_LINE_BREAK_RE = re.compile(r"\r\n|\r")
_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")


@dataclass(frozen=True)
class Block:
    """
    One unit of scene content in the writing app's block format.

    Blocks without text act as spacers between paragraphs; the app renders
    them as an empty line, so ``text`` is omitted from the payload entirely
    instead of being written as an empty string.
    """

    type: str = BLOCK_TYPE_TEXT
    align: str = BLOCK_ALIGN_LEFT
    text: str | None = None

    def as_payload(self) -> dict[str, str]:
        payload = {"type": self.type, "align": self.align}
        if self.text is not None:
            payload["text"] = self.text
        return payload

    @classmethod
    def from_payload(cls, payload: object) -> "Block | None":
        if not isinstance(payload, Mapping):
            return None
        block_type = payload.get("type")
        align = payload.get("align")
        text = payload.get("text")
        return cls(
            type=block_type if isinstance(block_type, str) else BLOCK_TYPE_TEXT,
            align=align if isinstance(align, str) else BLOCK_ALIGN_LEFT,
            text=text if isinstance(text, str) else None,
        )


def _spacer() -> Block:
    return Block()


def parse_text_to_blocks(raw_text: str) -> list[Block]:
    """
    Split plain chapter text into paragraph blocks.

    Paragraphs are separated by one or more blank lines. Each paragraph is
    stripped and followed by a spacer block, except the last one. Text with
    no paragraphs still produces exactly one block.
    """
    normalized = _LINE_BREAK_RE.sub("\n", raw_text)
    segments = [
        segment.strip() for segment in _PARAGRAPH_BREAK_RE.split(normalized)
    ]
    segments = [segment for segment in segments if segment]

    blocks: list[Block] = []
    for index, segment in enumerate(segments):
        blocks.append(Block(text=segment))
        if index < len(segments) - 1:
            blocks.append(_spacer())

    if not segments:
        if raw_text:
            # whitespace only
            blocks.append(_spacer())
        else:
            blocks.append(Block(text=""))
    return blocks


def empty_blocks() -> list[Block]:
    return [Block(text="")]


def serialize_blocks(blocks: Iterable[Block]) -> str:
    payload = {"blocks": [block.as_payload() for block in blocks]}
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def deserialize_blocks(text: str) -> list[Block]:
    """Parse a scene's block container; raises ``ValueError`` on malformed input."""
    payload = json.loads(text)
    if not isinstance(payload, Mapping):
        raise ValueError("Block container must be a JSON object.")
    entries = payload.get("blocks")
    if not isinstance(entries, list):
        raise ValueError("Block container is missing a 'blocks' list.")
    blocks: list[Block] = []
    for entry in entries:
        block = Block.from_payload(entry)
        if block is not None:
            blocks.append(block)
    return blocks
