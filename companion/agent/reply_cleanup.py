"""Strip decoration artifacts some models wrap around their replies."""

from __future__ import annotations

import re

_FENCE_OPEN = re.compile(r"^```\w*\n")
_FENCE_CLOSE = re.compile(r"\n```$")
_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_TRAILING_TURN_TOKENS = re.compile(
    r"\s*(?:</start_of_turn>|</end_of_turn>)+\s*$", re.IGNORECASE
)


def strip_code_fence(text: str) -> str:
    """Unwrap the reply only when the whole text is one fenced block."""
    trimmed = text.strip()
    if _FENCE_OPEN.search(trimmed) and _FENCE_CLOSE.search(trimmed):
        return "\n".join(trimmed.split("\n")[1:-1])
    return text


def strip_think_blocks(text: str) -> str:
    return _THINK_BLOCK.sub("", text).strip()


def strip_trailing_artifacts(text: str) -> str:
    return _TRAILING_TURN_TOKENS.sub("", text).strip()


def clean_reply(text: str) -> str:
    return strip_trailing_artifacts(strip_think_blocks(strip_code_fence(text)))
