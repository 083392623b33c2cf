"""Weather watcher candidate backed by the Open-Meteo APIs.

Fires on the first observation of a session and afterwards only when the
current conditions differ noticeably from the last reported ones.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

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
    from companion.config.settings import WeatherSettings

logger = structlog.get_logger()

GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
CURRENT_FIELDS = (
    "temperature_2m,apparent_temperature,weathercode,"
    "relative_humidity_2m,wind_speed_10m,precipitation"
)

_LAT_LON_RE = re.compile(r"^\s*(-?\d{1,3}\.\d+)\s*,\s*(-?\d{1,3}\.\d+)\s*$")

WET_CODES = frozenset(
    {51, 53, 55, 56, 57, 61, 63, 65, 66, 67, 71, 73, 75, 80, 81, 82, 85, 86, 95, 96, 99}
)

WEATHER_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Freezing drizzle",
    57: "Heavy freezing drizzle",
    61: "Light rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Freezing rain",
    67: "Heavy freezing rain",
    71: "Light snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Light snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Thunderstorm with heavy hail",
}

# Thresholds for a "significant" change between two observations.
TEMP_DELTA_C = 1.5
APPARENT_DELTA_C = 2.0
HUMIDITY_DELTA_PCT = 12.0
WIND_DELTA_KPH = 8.0
PRECIP_DELTA_MM = 0.5


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float
    display_name: str
    timezone: str = "auto"


@dataclass(frozen=True)
class WeatherSnapshot:
    location_name: str
    timestamp: str | None
    weather_code: int
    temperature_c: float
    timezone: str = "auto"
    apparent_temperature_c: float | None = None
    humidity_percent: float | None = None
    wind_speed_kph: float | None = None
    precipitation_mm: float | None = None

    @property
    def description(self) -> str:
        return describe_weather_code(self.weather_code)


def describe_weather_code(code: int) -> str:
    return WEATHER_CODES.get(code, "Unknown conditions")


def is_wet(code: int) -> bool:
    return code in WET_CODES


def _num(value: object) -> float | None:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def has_significant_change(previous: WeatherSnapshot, current: WeatherSnapshot) -> bool:
    if previous.weather_code != current.weather_code:
        return True
    if is_wet(previous.weather_code) != is_wet(current.weather_code):
        return True
    if abs(previous.temperature_c - current.temperature_c) >= TEMP_DELTA_C:
        return True
    prev_apparent = previous.apparent_temperature_c
    cur_apparent = current.apparent_temperature_c
    if prev_apparent is None:
        prev_apparent = previous.temperature_c
    if cur_apparent is None:
        cur_apparent = current.temperature_c
    if abs(prev_apparent - cur_apparent) >= APPARENT_DELTA_C:
        return True
    if abs((previous.humidity_percent or 0) - (current.humidity_percent or 0)) >= HUMIDITY_DELTA_PCT:
        return True
    if abs((previous.wind_speed_kph or 0) - (current.wind_speed_kph or 0)) >= WIND_DELTA_KPH:
        return True
    return abs((previous.precipitation_mm or 0) - (current.precipitation_mm or 0)) >= PRECIP_DELTA_MM


def describe_trend(previous: WeatherSnapshot, current: WeatherSnapshot) -> str:
    fragments: list[str] = []
    if previous.weather_code != current.weather_code:
        fragments.append(
            f"conditions shifted from {previous.description.lower()} "
            f"to {current.description.lower()}"
        )

    temp_delta = current.temperature_c - previous.temperature_c
    if abs(temp_delta) >= 0.5:
        if abs(temp_delta) >= 5:
            magnitude = "a lot "
        elif abs(temp_delta) >= 2:
            magnitude = "noticeably "
        else:
            magnitude = ""
        fragments.append(f"{magnitude}{'warmer' if temp_delta > 0 else 'cooler'}")

    humidity_delta = (current.humidity_percent or 0) - (previous.humidity_percent or 0)
    if abs(humidity_delta) >= 10:
        fragments.append("more humid" if humidity_delta > 0 else "drier")

    wind_delta = (current.wind_speed_kph or 0) - (previous.wind_speed_kph or 0)
    if abs(wind_delta) >= 8:
        fragments.append("wind picking up" if wind_delta > 0 else "winds easing")

    precip_delta = (current.precipitation_mm or 0) - (previous.precipitation_mm or 0)
    if abs(precip_delta) >= 0.3:
        fragments.append("rain moving in" if precip_delta > 0 else "rain letting up")

    if not fragments:
        return "conditions only nudged a little"
    if len(fragments) == 1:
        return fragments[0]
    return f"{', '.join(fragments[:-1])} and {fragments[-1]}"


def render_time(timestamp: str | None, timezone: str = "auto") -> str:
    if not timestamp:
        return "just now"
    try:
        moment = datetime.fromisoformat(timestamp)
    except ValueError:
        return "just now"
    if moment.tzinfo is not None and timezone != "auto":
        try:
            moment = moment.astimezone(ZoneInfo(timezone))
        except ZoneInfoNotFoundError:
            pass
    return moment.strftime("%H:%M")


def build_prompt(current: WeatherSnapshot, previous: WeatherSnapshot | None) -> str:
    line = (
        f"Current conditions in {current.location_name}: {current.description.lower()} "
        f"with {current.temperature_c:.1f}°C"
    )
    if current.humidity_percent is not None:
        line += f", humidity {round(current.humidity_percent)}%"
    if current.wind_speed_kph is not None:
        line += f", wind {round(current.wind_speed_kph)} km/h"
    if current.precipitation_mm is not None and current.precipitation_mm > 0.01:
        line += f", precipitation {current.precipitation_mm:.1f} mm"
    line += f" as of {render_time(current.timestamp, current.timezone)}."

    if previous is not None:
        change = (
            f"Previously it was {previous.description.lower()} around "
            f"{previous.temperature_c:.1f}°C at "
            f"{render_time(previous.timestamp, previous.timezone)}. "
            f"Since then {describe_trend(previous, current)}."
        )
    else:
        change = (
            "This is the first weather check of the session, so highlight why "
            "these conditions matter."
        )

    return "\n".join(
        [
            line,
            change,
            "Share a warm, conversational weather update that ties the shift to how the "
            "coding session might feel. Keep it short, avoid repeating raw numbers "
            "verbatim, and end with an encouraging nudge to stay productive.",
        ]
    )


class WeatherCandidate(CandidateGenerator):
    """Reports weather at the configured location when it changes."""

    def __init__(
        self,
        settings: WeatherSettings,
        probe: ConnectivityProbe,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._probe = probe
        self._transport = transport
        self._clock = clock
        self._last_observations: dict[str, WeatherSnapshot] = {}
        self._locations: dict[str, Coordinates] = {}
        self._location_errors_reported: set[str] = set()
        self._cache: dict[str, tuple[WeatherSnapshot, float]] = {}

    @property
    def candidate_id(self) -> str:
        return "weather"

    @property
    def name(self) -> str:
        return "Weather Watcher"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=HTTP_TIMEOUT_S,
            headers={"User-Agent": USER_AGENT},
        )

    async def _current(self, context: DispatchContext) -> tuple[str, WeatherSnapshot] | None:
        """Resolve the location and fetch (or reuse) its snapshot."""
        raw = self._settings.location.strip()
        if not raw:
            return None
        key = raw.lower()

        coords = await self.resolve_coordinates(raw, key)
        if coords is None:
            if key not in self._location_errors_reported:
                context.enqueue_message(
                    f'My weather senses are jammed: I couldn\'t resolve the location "{raw}". '
                    'Try setting WEATHER_LOCATION to a city or "lat,lon".',
                    priority=True,
                )
                self._location_errors_reported.add(key)
            return None
        self._location_errors_reported.discard(key)

        snapshot = await self._snapshot(key, coords)
        return (key, snapshot) if snapshot else None

    async def should_trigger(self, context: DispatchContext) -> bool:
        if not await self._probe.is_online():
            return False
        current = await self._current(context)
        if current is None:
            return False
        key, snapshot = current
        previous = self._last_observations.get(key)
        return previous is None or has_significant_change(previous, snapshot)

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        current = await self._current(context)
        if current is None:
            return None
        key, snapshot = current

        previous = self._last_observations.get(key)
        changed = previous is None or has_significant_change(previous, snapshot)
        self._last_observations[key] = snapshot
        if not changed:
            return None

        logger.info("weather_changed", location=snapshot.location_name, first=previous is None)
        return TextPrompt(user_prompt=build_prompt(snapshot, previous))

    async def resolve_coordinates(self, raw: str, key: str) -> Coordinates | None:
        if key in self._locations:
            return self._locations[key]

        m = _LAT_LON_RE.match(raw)
        if m:
            lat, lon = float(m.group(1)), float(m.group(2))
            coords = Coordinates(latitude=lat, longitude=lon, display_name=f"{lat:.2f}, {lon:.2f}")
            self._locations[key] = coords
            return coords

        try:
            async with self._client() as client:
                resp = await client.get(
                    GEOCODING_URL,
                    params={"name": raw, "count": 1, "language": "en", "format": "json"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("weather_geocoding_failed", location=raw, error=str(e))
            return None

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            return None
        top = results[0]
        parts = [top.get("name")]
        if top.get("admin1") and top.get("admin1") != top.get("name"):
            parts.append(top["admin1"])
        if top.get("country"):
            parts.append(top["country"])
        coords = Coordinates(
            latitude=float(top["latitude"]),
            longitude=float(top["longitude"]),
            display_name=", ".join(p for p in parts if p),
            timezone=top.get("timezone") or "auto",
        )
        self._locations[key] = coords
        return coords

    async def _snapshot(self, key: str, coords: Coordinates) -> WeatherSnapshot | None:
        now = self._clock()
        cached = self._cache.get(key)
        if cached and now - cached[1] < self._settings.cache_minutes * 60:
            return cached[0]

        snapshot = await self.fetch_current(coords)
        if snapshot is None:
            # stale data beats none
            return cached[0] if cached else None
        self._cache[key] = (snapshot, now)
        return snapshot

    async def fetch_current(self, coords: Coordinates) -> WeatherSnapshot | None:
        try:
            async with self._client() as client:
                resp = await client.get(
                    FORECAST_URL,
                    params={
                        "latitude": str(coords.latitude),
                        "longitude": str(coords.longitude),
                        "current": CURRENT_FIELDS,
                        "timezone": coords.timezone,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("weather_fetch_failed", location=coords.display_name, error=str(e))
            return None

        current = data.get("current") if isinstance(data, dict) else None
        if not isinstance(current, dict):
            return None
        temperature = _num(current.get("temperature_2m"))
        if temperature is None:
            return None

        code = current.get("weathercode", current.get("weather_code", 0))
        return WeatherSnapshot(
            location_name=coords.display_name,
            timestamp=current.get("time"),
            timezone=coords.timezone,
            weather_code=int(_num(code) or 0),
            temperature_c=temperature,
            apparent_temperature_c=_num(current.get("apparent_temperature")),
            humidity_percent=_num(current.get("relative_humidity_2m")),
            wind_speed_kph=_num(current.get("wind_speed_10m")),
            precipitation_mm=_num(current.get("precipitation")),
        )
