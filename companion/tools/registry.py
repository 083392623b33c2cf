from __future__ import annotations

import json
import uuid

import structlog

from companion.agent.model_client import ToolCall
from companion.infra.errors import ToolError
from companion.tools.base import BaseTool, ToolContext, ToolResult, ToolStatus

logger = structlog.get_logger()


def _safe_parse_args(raw: str | dict | None) -> tuple[dict, str | None]:
    """Parse JSON tool call arguments. Returns (dict, error_message | None)."""
    if isinstance(raw, dict):
        return raw, None
    if not raw:
        return {}, None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        return {}, f"JSON parse error: {e}"
    if parsed is None:
        return {}, None
    if not isinstance(parsed, dict):
        return {}, f"Expected dict, got {type(parsed).__name__}"
    return parsed, None


def _synthesize_call_id() -> str:
    return f"tool-{uuid.uuid4().hex[:12]}"


class ToolRegistry:
    """Local tool-handler table consulted by the tool-call loop."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError if name already registered."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def __len__(self) -> int:
        return len(self._tools)

    def get_tools_schema(self) -> list[dict]:
        """Return tools in OpenAI function calling format.

        Output format:
        [{"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}]
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in self._tools.values()
        ]

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Execute one tool call. Failures become error results, never exceptions."""
        call_id = call.call_id or _synthesize_call_id()

        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning("unknown_tool", tool_name=call.name)
            return ToolResult(
                call_id=call_id,
                content=f'Tool "{call.name}" is not implemented.',
                status=ToolStatus.error,
            )

        arguments, parse_err = _safe_parse_args(call.arguments)
        if parse_err:
            logger.warning(
                "tool_call_args_parse_failed",
                tool_name=call.name,
                error=parse_err,
                raw_args=str(call.arguments)[:200],
            )

        try:
            content = await tool.execute(arguments, context)
        except ToolError as e:
            logger.warning("tool_execution_rejected", tool_name=call.name, error=str(e))
            return ToolResult(call_id=call_id, content=str(e), status=ToolStatus.error)
        except Exception:
            logger.exception("tool_execution_failed", tool_name=call.name)
            return ToolResult(
                call_id=call_id,
                content=f"Tool {call.name} failed",
                status=ToolStatus.error,
            )

        logger.info("tool_executed", tool_name=call.name, cycle_id=context.cycle_id)
        return ToolResult(call_id=call_id, content=content)
