from __future__ import annotations

from collections import deque
from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    """A text message supplied by the user or an integration. Consumed once."""

    text: str
    priority: bool = False


class MessageQueue:
    """Two-tier FIFO buffer of pending messages.

    Priority messages are always dequeued before normal ones; each tier keeps
    insertion order. The queue is unbounded; the Scheduler drains one message
    per dispatch cycle.
    """

    def __init__(self) -> None:
        self._priority: deque[Message] = deque()
        self._normal: deque[Message] = deque()

    def enqueue(self, text: str) -> None:
        """Append to the tail of the normal tier."""
        self._normal.append(Message(text=text))

    def enqueue_front(self, text: str) -> None:
        """Queue ahead of all normal messages, behind earlier priority ones."""
        self._priority.append(Message(text=text, priority=True))

    def dequeue(self) -> Message | None:
        """Remove and return the head message, or None if empty."""
        if self._priority:
            return self._priority.popleft()
        if self._normal:
            return self._normal.popleft()
        return None

    def peek(self) -> Message | None:
        if self._priority:
            return self._priority[0]
        if self._normal:
            return self._normal[0]
        return None

    def is_empty(self) -> bool:
        return not self._priority and not self._normal

    def clear(self) -> None:
        self._priority.clear()
        self._normal.clear()

    def __len__(self) -> int:
        return len(self._priority) + len(self._normal)
