"""Conversation history owned by the Scheduler.

Invariant: a non-empty history starts with a system turn. Pruning keeps that
turn and the most recent (max - 1) turns in order.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    system = "system"
    user = "user"
    assistant = "assistant"
    tool = "tool"


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str
    tool_call_id: str | None = None
    # Assistant turns that requested tools keep the raw calls for the next round
    tool_calls: tuple[dict[str, Any], ...] | None = None

    def to_openai(self) -> dict[str, Any]:
        """Convert to an OpenAI chat-format message dict."""
        msg: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            msg["tool_calls"] = list(self.tool_calls)
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


class ConversationHistory:
    """Role-tagged, bounded sequence of conversation turns."""

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []
        self._document_anchor: str | None = None

    @property
    def document_anchor(self) -> str | None:
        """Path of the document this conversation is about, if any."""
        return self._document_anchor

    def sync_document(self, path: str | None) -> bool:
        """Reset when the active document differs from the anchor.

        Returns True if the history was reset. A None path (no active
        document) leaves the history untouched.
        """
        if path is None or path == self._document_anchor:
            return False
        self._turns.clear()
        self._document_anchor = path
        return True

    def reset(self) -> None:
        self._turns.clear()
        self._document_anchor = None

    def ensure_system(self, system_prompt: str) -> None:
        """Prepend the system turn if history is empty or does not start with one."""
        if not self._turns or self._turns[0].role != Role.system:
            self._turns.insert(0, ConversationTurn(role=Role.system, content=system_prompt))

    def extend(self, turns: Iterable[ConversationTurn], *, max_turns: int) -> None:
        """Append one completed cycle's turns, then prune to max_turns."""
        self._turns.extend(turns)
        self.prune(max_turns)

    def prune(self, max_turns: int) -> None:
        max_turns = max(1, max_turns)
        if len(self._turns) <= max_turns:
            return
        head = [self._turns[0]] if self._turns[0].role == Role.system else []
        keep = max_turns - len(head)
        tail = self._turns[-keep:] if keep > 0 else []
        # A tool result whose requesting assistant turn was cut is rejected by the API
        while tail and tail[0].role == Role.tool:
            tail.pop(0)
        self._turns = [*head, *tail]

    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    def to_openai(self) -> list[dict[str, Any]]:
        return [t.to_openai() for t in self._turns]

    def export(self) -> list[dict[str, str]]:
        """Serialize for display or debugging: role, content, tool_call_id."""
        result: list[dict[str, str]] = []
        for turn in self._turns:
            item = {"role": turn.role.value, "content": turn.content}
            if turn.tool_call_id is not None:
                item["tool_call_id"] = turn.tool_call_id
            result.append(item)
        return result

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(list(self._turns))

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]
