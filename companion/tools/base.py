from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum


class ToolStatus(StrEnum):
    success = "success"
    error = "error"


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call, sent back to the model as a tool turn."""

    call_id: str
    content: str
    status: ToolStatus = ToolStatus.success


@dataclass
class ToolContext:
    """Per-dispatch-cycle state shared between tool calls.

    Created by the Scheduler for each cycle and discarded afterwards, so
    nothing a tool records can leak into the next cycle.
    """

    cycle_id: str
    quick_replies: list[str] = field(default_factory=list)


class BaseTool(ABC):
    """Abstract base class for tools the model may call."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in function calling."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @abstractmethod
    async def execute(self, arguments: dict, context: ToolContext) -> str:
        """Run the tool and return the content reported back to the model.

        Raise ToolError to report a failure to the model.
        """
        ...
