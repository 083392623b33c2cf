from __future__ import annotations

# Cooldown floor between completed dispatches; configured values below are raised to it.
MIN_DISPATCH_INTERVAL_S: float = 10.0

DEFAULT_CHARACTER = "Mao"
FALLBACK_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Reply in a friendly and concise manner."
)

DEFAULT_RSS_FEEDS: tuple[str, ...] = (
    "https://www.channelnewsasia.com/api/v1/rss-outbound-feed?_format=xml",
)

HTTP_TIMEOUT_S: float = 10.0
USER_AGENT = "companion-dispatcher/0.1"
