from __future__ import annotations

import asyncio
import base64
import sys
import tempfile
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path

import structlog

from companion.agent.events import ImageAttachment
from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    ImagePrompt,
    PromptPayload,
)

logger = structlog.get_logger()

MIN_CAPTURE_INTERVAL_S = 60.0

_POWERSHELL_CAPTURE = """
Add-Type -AssemblyName System.Windows.Forms,System.Drawing
$bounds = [System.Windows.Forms.Screen]::PrimaryScreen.Bounds
$bmp = New-Object System.Drawing.Bitmap $bounds.width, $bounds.height
$graphics = [System.Drawing.Graphics]::FromImage($bmp)
$graphics.CopyFromScreen($bounds.Location, [System.Drawing.Point]::Empty, $bounds.size)
$bmp.Save('{path}')
$graphics.Dispose()
$bmp.Dispose()
"""

ScreenCapture = Callable[[], Awaitable[bytes | None]]


def capture_commands(path: Path, platform: str = sys.platform) -> list[list[str]]:
    """Non-interactive full-screen capture commands to try, in order."""
    target = str(path)
    if platform == "darwin":
        return [["screencapture", "-x", "-T", "0", target]]
    if platform == "win32":
        return [["powershell", "-command", _POWERSHELL_CAPTURE.format(path=target)]]
    if platform.startswith("linux"):
        return [
            ["gnome-screenshot", "-f", target],
            ["scrot", target],
            ["import", "-window", "root", target],
        ]
    return []


async def capture_screen() -> bytes | None:
    """Capture the primary screen as PNG bytes, or None when no tool works."""
    with tempfile.TemporaryDirectory(prefix="companion-shot-") as tmp:
        path = Path(tmp) / "screen.png"
        commands = capture_commands(path)
        if not commands:
            logger.warning("screenshot_unsupported_platform", platform=sys.platform)
            return None

        for argv in commands:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
                _, stderr = await proc.communicate()
            except OSError as e:
                logger.info("screenshot_tool_unavailable", tool=argv[0], error=str(e))
                continue
            if proc.returncode == 0 and path.exists() and path.stat().st_size > 0:
                return path.read_bytes()
            logger.info(
                "screenshot_tool_failed",
                tool=argv[0],
                returncode=proc.returncode,
                stderr=stderr.decode(errors="replace")[:200],
            )

    logger.warning("screenshot_no_tool", hint="install gnome-screenshot, scrot, or ImageMagick")
    return None


class ScreenshotCandidate(CandidateGenerator):
    """Captures the screen and asks a multimodal model to comment on it."""

    default_enabled = False

    def __init__(
        self,
        *,
        capture: ScreenCapture = capture_screen,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capture = capture
        self._clock = clock
        self._last_capture_at: float | None = None
        self._last_reply: str | None = None

    @property
    def candidate_id(self) -> str:
        return "screenshot"

    @property
    def name(self) -> str:
        return "Screenshot Analyzer"

    async def should_trigger(self, context: DispatchContext) -> bool:
        if self._last_capture_at is not None:
            if self._clock() - self._last_capture_at < MIN_CAPTURE_INTERVAL_S:
                return False
        return context.document is not None

    def on_response(self, text: str) -> None:
        self._last_reply = text

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        document = context.document
        if document is None:
            return None

        self._last_capture_at = self._clock()
        image = await self._capture()
        if not image:
            logger.warning("screenshot_capture_failed")
            return None

        lines = [
            "I've captured a screenshot of my coding workspace.",
            f"Current file: {document.display_path} ({document.language_id})",
            "",
            "Please analyze this screenshot and provide a brief, witty comment about:",
            "- The code or content visible",
            "- The workspace setup or layout",
            "- Any interesting patterns or issues you notice",
            "- General coding style or practices",
            "",
            "Keep it concise, constructive, and maybe a bit playful!",
        ]
        if self._last_reply:
            lines += [
                "",
                "Your previous comment on my screen was:",
                self._last_reply,
                "Do not repeat it; find something new to say.",
            ]
        lines += ["", f"[Screenshot captured at {datetime.now().strftime('%H:%M:%S')}]"]

        return ImagePrompt(
            user_prompt="\n".join(lines),
            image=ImageAttachment(
                data=base64.b64encode(image).decode("ascii"), mime_type="image/png"
            ),
        )
