from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from companion.agent.events import ImageAttachment

if TYPE_CHECKING:
    from companion.agent.history import ConversationHistory
    from companion.config.settings import Settings


@dataclass(frozen=True)
class LineWindow:
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class DocumentSnapshot:
    """What the host editor reports about the active document.

    The Scheduler only reads `path`; everything else is for generators.
    Line numbers are zero-based.
    """

    path: str
    language_id: str = "plaintext"
    lines: tuple[str, ...] = ()
    caret_line: int = 0
    caret_character: int = 0
    error_lines: frozenset[int] = frozenset()
    relative_path: str | None = None

    @property
    def display_path(self) -> str:
        return self.relative_path or self.path

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def lines_around(self, center: int, radius: int) -> LineWindow:
        if not self.lines:
            return LineWindow(start=0, end=0, text="")
        last = len(self.lines) - 1
        start = min(max(center - radius, 0), last)
        end = min(max(center + radius, 0), last)
        return LineWindow(start=start, end=end, text="\n".join(self.lines[start : end + 1]))


@dataclass(frozen=True)
class TextPrompt:
    """Plain text user turn, optionally with text appended to the displayed reply."""

    user_prompt: str
    display_append_text: str | None = None


@dataclass(frozen=True)
class ImagePrompt:
    """User turn carrying an image for multimodal models."""

    user_prompt: str
    image: ImageAttachment
    display_append_text: str | None = None


PromptPayload = TextPrompt | ImagePrompt


@dataclass
class DispatchContext:
    """Per-cycle view handed to candidate hooks. Owned by the Scheduler."""

    settings: Settings
    history: ConversationHistory
    enqueue_message: Callable[..., None]
    document: DocumentSnapshot | None = None
    recent_files: list[str] = field(default_factory=list)


class CandidateGenerator(ABC):
    """A pluggable source of autonomous prompts.

    Only `candidate_id`, `name` and `generate_message` are required. The
    other hooks have working defaults: always enabled unless configured
    otherwise, weight 1.0, always eligible, no response feedback.
    """

    default_enabled: bool = True
    default_weight: float = 1.0

    @property
    @abstractmethod
    def candidate_id(self) -> str:
        """Stable id used in configuration and trigger hints."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    def is_enabled(self, settings: Settings) -> bool:
        return settings.candidates.is_enabled(self.candidate_id, self.default_enabled)

    def get_weight(self, settings: Settings) -> float:
        return self.default_weight

    async def should_trigger(self, context: DispatchContext) -> bool:
        return True

    @abstractmethod
    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        """Build the prompt for this cycle, or None to skip the cycle."""
        ...

    def on_response(self, text: str) -> None:
        """Receive the cleaned model reply to a prompt this generator produced."""

    def activate(self) -> None:
        """Called once when the Scheduler starts."""

    def deactivate(self) -> None:
        """Called when the Scheduler is disposed."""

    def record_activity(self) -> None:
        """Called when the host sees the user edit, save or switch files."""
