from __future__ import annotations

from typing import Any

from companion.tools.base import BaseTool, ToolContext

QUICK_REPLIES_TOOL_NAME = "show_quick_replies"
MAX_QUICK_REPLIES = 5

_REPLY_KEYS = ("text", "label", "value", "reply")


def normalize_quick_replies(raw: Any) -> list[str]:
    """Coerce model-supplied replies into a deduplicated list of strings.

    Accepts plain strings or objects carrying one of text/label/value/reply.
    Blank and repeated entries are dropped; at most MAX_QUICK_REPLIES are kept.
    """
    if not isinstance(raw, list):
        return []

    replies: list[str] = []
    seen: set[str] = set()
    for item in raw:
        candidate: str | None = None
        if isinstance(item, str):
            candidate = item.strip()
        elif isinstance(item, dict):
            for key in _REPLY_KEYS:
                value = item.get(key)
                if isinstance(value, str) and value.strip():
                    candidate = value.strip()
                    break

        if candidate and candidate not in seen:
            seen.add(candidate)
            replies.append(candidate)
            if len(replies) >= MAX_QUICK_REPLIES:
                break
    return replies


class QuickRepliesTool(BaseTool):
    """Lets the model offer short suggested replies to the user."""

    @property
    def name(self) -> str:
        return QUICK_REPLIES_TOOL_NAME

    @property
    def description(self) -> str:
        return (
            "Display up to three concise quick-reply options for the user. "
            "The user can use these options to reply to you. Think and imagine "
            "about how the user would reply to your message. Do not just repeat "
            "what you said."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "replies": {
                    "type": "array",
                    "description": "Between one and three short replies for the user to choose from.",
                    "minItems": 1,
                    "maxItems": 3,
                    "items": {
                        "type": "string",
                        "minLength": 1,
                        "description": "Replies that the user can choose from.",
                    },
                },
            },
            "required": ["replies"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        replies = normalize_quick_replies(arguments.get("replies"))
        context.quick_replies = replies
        if not replies:
            return "No quick replies were displayed because no valid replies were provided."
        plural = "" if len(replies) == 1 else "s"
        return f"Prepared {len(replies)} quick reply option{plural} for the user."
