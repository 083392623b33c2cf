from __future__ import annotations

from dataclasses import dataclass, field

from companion.infra.errors import FailureKind


@dataclass(frozen=True)
class ImageAttachment:
    """Base64 image sent alongside a prompt."""

    data: str
    mime_type: str = "image/png"

    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


@dataclass
class ThinkingStarted:
    """A dispatch cycle acquired the single-flight guard."""


@dataclass
class ThinkingStopped:
    """A dispatch cycle released the single-flight guard."""


@dataclass
class DispatchSucceeded:
    """Final reply of a dispatch cycle, ready for display."""

    display_text: str
    reply_text: str
    appended_text: str | None = None
    image: ImageAttachment | None = None
    quick_replies: list[str] = field(default_factory=list)
    candidate_id: str | None = None


@dataclass
class DispatchFailed:
    """A dispatch cycle failed. History was left untouched."""

    kind: FailureKind
    message: str
    code: str = "DISPATCH_ERROR"

    @property
    def is_setup_error(self) -> bool:
        """Connection and model errors call for reconfiguration, not a retry."""
        return self.kind in (FailureKind.connection, FailureKind.model_not_found)


DispatchEvent = ThinkingStarted | ThinkingStopped | DispatchSucceeded | DispatchFailed
