from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

import structlog

from companion.constants import FALLBACK_SYSTEM_PROMPT

logger = structlog.get_logger()

CARD_SUFFIX = ".mdx"

_FRONTMATTER = re.compile(r"^---\n(.*?)\n---\n(.*)$", re.DOTALL)


@dataclass(frozen=True)
class CharacterCard:
    name: str
    system_prompt: str


def parse_card(content: str) -> tuple[dict[str, str], str]:
    """Split a card into `key: value` frontmatter and body."""
    match = _FRONTMATTER.match(content)
    if not match:
        return {}, content.strip()

    frontmatter: dict[str, str] = {}
    for line in match.group(1).split("\n"):
        key, sep, value = line.partition(":")
        if sep and key.strip():
            frontmatter[key.strip()] = value.strip()
    return frontmatter, match.group(2).strip()


class PersonaLoader:
    """Resolves a character name to its system prompt from `<dir>/<name>.mdx`."""

    def __init__(self, characters_dir: Path) -> None:
        self._characters_dir = characters_dir

    def load(self, character: str) -> CharacterCard | None:
        path = self._characters_dir / f"{character}{CARD_SUFFIX}"
        if not path.is_file():
            logger.warning("character_card_missing", character=character, path=str(path))
            return None
        try:
            content = path.read_text(encoding="utf-8")
        except OSError:
            logger.exception("character_card_unreadable", character=character, path=str(path))
            return None

        frontmatter, body = parse_card(content)
        return CharacterCard(name=frontmatter.get("name", character), system_prompt=body)

    def system_prompt(self, character: str) -> str:
        card = self.load(character)
        if card is None or not card.system_prompt:
            return FALLBACK_SYSTEM_PROMPT
        return card.system_prompt

    def list_characters(self) -> list[str]:
        if not self._characters_dir.is_dir():
            return []
        return sorted(p.stem for p in self._characters_dir.glob(f"*{CARD_SUFFIX}"))
