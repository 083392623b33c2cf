"""RSS / Atom feed reader candidate.

Feeds are parsed with a small regex scanner over <item> (RSS 2.0) and
<entry> (Atom) blocks; CDATA sections and Atom `href` links are handled.
"""

from __future__ import annotations

import html
import random
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import structlog

from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    PromptPayload,
    TextPrompt,
)
from companion.candidates.connectivity import ConnectivityProbe
from companion.constants import HTTP_TIMEOUT_S, USER_AGENT

if TYPE_CHECKING:
    from companion.config.settings import RSSFeedSettings

logger = structlog.get_logger()

SUMMARY_LIMIT = 250

_ITEM_RE = re.compile(r"<(?:item|entry)\b[^>]*>(.*?)</(?:item|entry)>", re.DOTALL | re.IGNORECASE)
_ATOM_LINK_RE = re.compile(r"""<link[^>]+href=["']([^"']+)["']""", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str
    description: str | None = None
    content: str | None = None
    published: str | None = None
    author: str | None = None


def clean_text(raw: str) -> str:
    """Unescape entities and strip markup."""
    return _TAG_RE.sub("", html.unescape(raw)).strip()


def _field(block: str, tag: str) -> str | None:
    tag_re = re.escape(tag)
    m = re.search(
        rf"<{tag_re}[^>]*>\s*<!\[CDATA\[(.*?)\]\]>\s*</{tag_re}>", block, re.DOTALL | re.IGNORECASE
    )
    if m is None:
        m = re.search(rf"<{tag_re}[^>]*>(.*?)</{tag_re}>", block, re.DOTALL | re.IGNORECASE)
    if m is None:
        return None
    value = clean_text(m.group(1))
    return value or None


def parse_feed(xml: str) -> list[FeedItem]:
    """Extract items that carry both a title and a link."""
    items: list[FeedItem] = []
    for match in _ITEM_RE.finditer(xml):
        block = match.group(1)
        title = _field(block, "title") or "Untitled"
        link = _field(block, "link") or _field(block, "guid")
        if not link:
            m = _ATOM_LINK_RE.search(block)
            link = m.group(1) if m else None
        if not link:
            continue
        items.append(
            FeedItem(
                title=title,
                link=link,
                description=_field(block, "description") or _field(block, "summary"),
                content=_field(block, "content:encoded") or _field(block, "content"),
                published=(
                    _field(block, "pubDate") or _field(block, "published") or _field(block, "updated")
                ),
                author=_field(block, "author") or _field(block, "dc:creator"),
            )
        )
    return items


def truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class RSSFeedCandidate(CandidateGenerator):
    """Picks one article from a random configured feed and asks for thoughts on it."""

    def __init__(
        self,
        settings: RSSFeedSettings,
        probe: ConnectivityProbe,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._probe = probe
        self._transport = transport
        self._rng = rng or random.Random()

    @property
    def candidate_id(self) -> str:
        return "rssFeed"

    @property
    def name(self) -> str:
        return "RSS Feed Reader"

    async def should_trigger(self, context: DispatchContext) -> bool:
        return await self._probe.is_online()

    async def fetch_feed(self, url: str) -> list[FeedItem]:
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=HTTP_TIMEOUT_S,
                follow_redirects=True,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
                },
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("rss_fetch_failed", url=url, error=str(e))
            return []
        return parse_feed(resp.text)

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        feeds = self._settings.feeds
        if not feeds:
            return None

        items = await self.fetch_feed(self._rng.choice(feeds))
        if not items:
            return None

        item = self._rng.choice(items)
        parts = [f"Title: {item.title}"]
        body = item.content or item.description
        if body:
            parts.append(f"Summary: {truncate(body, SUMMARY_LIMIT)}")

        prompt = "\n".join(
            [
                "\n".join(parts),
                "",
                "Give me some insights or interesting thoughts about this article. "
                "Be concise and witty.",
            ]
        )
        return TextPrompt(
            user_prompt=prompt,
            display_append_text=f"**{item.title}**\n[Read more]({item.link})",
        )
