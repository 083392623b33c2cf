from __future__ import annotations

import asyncio
import random

import httpx
import structlog

from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    PromptPayload,
    TextPrompt,
)
from companion.constants import HTTP_TIMEOUT_S, USER_AGENT

logger = structlog.get_logger()

HN_API = "https://hacker-news.firebaseio.com/v0"
HN_ITEM_URL = "https://news.ycombinator.com/item?id={id}"
TOP_POOL = 30
PICK = 3
TEXT_LIMIT = 200


def format_article(index: int, article: dict) -> str:
    parts = [
        f"{index}. **{article['title']}**",
        f"   By: {article.get('by', 'unknown')}",
        f"   HN Discussion: {HN_ITEM_URL.format(id=article.get('id'))}",
    ]
    text = article.get("text")
    if text:
        if len(text) > TEXT_LIMIT:
            text = text[:TEXT_LIMIT] + "..."
        parts.append(f"   Content: {text}")
    return "\n".join(parts)


class HackerNewsCandidate(CandidateGenerator):
    """Briefs the user on a few random stories from the HN front page."""

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._transport = transport
        self._rng = rng or random.Random()

    @property
    def candidate_id(self) -> str:
        return "hackerNews"

    @property
    def name(self) -> str:
        return "HackerNews Reader"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=HTTP_TIMEOUT_S,
            headers={"User-Agent": USER_AGENT},
        )

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        try:
            async with self._client() as client:
                resp = await client.get(f"{HN_API}/topstories.json")
                resp.raise_for_status()
                top_ids = resp.json()
                if not isinstance(top_ids, list) or not top_ids:
                    return None

                pool = top_ids[:TOP_POOL]
                picked = self._rng.sample(pool, min(PICK, len(pool)))
                items = await asyncio.gather(
                    *(self._fetch_item(client, item_id) for item_id in picked)
                )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("hacker_news_fetch_failed", error=str(e))
            return None

        articles = [a for a in items if a and a.get("title")]
        if not articles:
            return None

        summaries = "\n\n".join(format_article(i, a) for i, a in enumerate(articles, start=1))
        prompt = "\n".join(
            [
                "Top HackerNews Articles",
                "",
                summaries,
                "",
                "I haven't read these articles yet, so brief anything interesting to me. "
                "Tell me what article you are talking about and give me the link to the "
                "discussion. Be concise and witty.",
            ]
        )
        return TextPrompt(user_prompt=prompt)

    async def _fetch_item(self, client: httpx.AsyncClient, item_id: int) -> dict | None:
        try:
            resp = await client.get(f"{HN_API}/item/{item_id}.json")
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("hacker_news_item_failed", item_id=item_id, error=str(e))
            return None
        return data if isinstance(data, dict) else None
