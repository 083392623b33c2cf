from __future__ import annotations

from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    DocumentSnapshot,
    PromptPayload,
    TextPrompt,
)

WIDE_RADIUS = 10
NARROW_RADIUS = 2
ANCHOR_JUMP_LINES = 10
MAX_RECENT_FILES = 5

_CARET_NOTE = (
    "Important: The ellipsis is only added for you to know the position of "
    "the caret and not a part of the code"
)


def mark_caret(document: DocumentSnapshot, start: int, text: str) -> str:
    """Insert `...` at the caret column of the caret line inside a snippet."""
    lines = text.split("\n")
    index = document.caret_line - start
    if 0 <= index < len(lines):
        line = lines[index]
        at = max(0, min(document.caret_character, len(line)))
        lines[index] = line[:at] + "..." + line[at:]
    return "\n".join(lines)


class CodeReviewCandidate(CandidateGenerator):
    """Roasts the code around the caret.

    The first prompt for a file, and any prompt after the caret moved more
    than ten lines from the last anchor, carries a wide window; in between
    only the focused lines are sent and the model is asked to continue.
    """

    def __init__(self) -> None:
        self._anchor_line: int | None = None
        self._anchor_path: str | None = None

    @property
    def candidate_id(self) -> str:
        return "codeReview"

    @property
    def name(self) -> str:
        return "Code Review"

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        document = context.document
        if document is None or not document.lines:
            return None

        if self._anchor_path != document.path:
            self._anchor_line = None
            self._anchor_path = document.path

        caret = document.caret_line
        wide = document.lines_around(caret, WIDE_RADIUS)
        focused = document.lines_around(caret, NARROW_RADIUS)
        has_error = caret in document.error_lines
        snippet = mark_caret(document, focused.start, focused.text) if has_error else focused.text

        include_wide = self._anchor_line is None or abs(caret - self._anchor_line) > ANCHOR_JUMP_LINES
        if include_wide:
            self._anchor_line = caret

        header = (
            f"File: {document.display_path}  |  Language: {document.language_id}  |  "
            f"Line: {caret + 1}"
        )

        def instruction(base: str) -> str:
            return f"{_CARET_NOTE}\n\n{base}" if has_error else base

        if include_wide:
            above = wide.start
            below = (document.line_count - 1) - wide.end
            parts = [header]
            others = [f for f in context.recent_files if f != document.path][:MAX_RECENT_FILES]
            if others:
                parts.append(f"Recently touched: {', '.join(others)}")
            parts += ["", "Context:"]
            if above > 0:
                parts.append(f"({above} lines above)")
            parts += ["```", wide.text, "```"]
            if below > 0:
                parts.append(f"({below} lines below)")
            parts += [
                "",
                "Focused snippet:",
                "```",
                snippet,
                "```",
                "",
                instruction("Roast the code above. Be concise, witty, and constructive."),
            ]
        else:
            parts = [
                header,
                "Snippet:",
                "```",
                snippet,
                "```",
                instruction("Continue roasting based on prior context. Be concise and witty."),
            ]

        return TextPrompt(user_prompt="\n".join(parts))
