"""The Odds API client.

Fetches bookmaker odds (American format) and game scores, and maps them into
SnapshotInput / ScoreRecord values. Requests retry with exponential backoff
on timeouts, 429 and 5xx responses.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx
import structlog

from linesentry.config import get_settings
from linesentry.services.errors import OddsFeedError
from linesentry.services.ingestion.snapshots import MarketKeyData, SnapshotInput
from linesentry.services.timing import parse_iso, utcnow

logger = structlog.get_logger(__name__)


@dataclass
class ScoreRecord:
    """Game score as reported by the feed."""

    event_id: str
    sport: str
    home_team: str
    away_team: str
    completed: bool
    home_score: int | None = None
    away_score: int | None = None
    commence_time: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def parse_odds_events(
    events: list[dict[str, Any]], sport: str, captured_at: datetime
) -> list[SnapshotInput]:
    """
    Flatten an /odds response into one SnapshotInput per bookmaker outcome.

    The market's ``last_update`` is used as captured_at when present so
    repeated polls of an unchanged line collapse onto one snapshot.
    """
    snapshots = []
    for event in events:
        commence_time = parse_iso(event.get("commence_time"))
        description = f"{event.get('away_team')} @ {event.get('home_team')}"
        for bookmaker in event.get("bookmakers", []):
            for market in bookmaker.get("markets", []):
                market_time = parse_iso(market.get("last_update")) or captured_at
                for outcome in market.get("outcomes", []):
                    price = outcome.get("price")
                    if price is None:
                        continue
                    key = MarketKeyData(
                        event_id=event["id"],
                        sport=sport,
                        bookmaker=bookmaker["key"],
                        market_type=market["key"],
                        outcome_name=outcome["name"],
                        player_name=outcome.get("description"),
                        description=description,
                        commence_time=commence_time,
                    )
                    snapshots.append(
                        SnapshotInput(
                            market_key=key,
                            price=int(price),
                            point=outcome.get("point"),
                            captured_at=market_time,
                        )
                    )
    return snapshots


def _team_score(scores: list[dict[str, Any]] | None, team: str) -> int | None:
    for entry in scores or []:
        if entry.get("name") == team:
            try:
                return int(entry["score"])
            except (KeyError, TypeError, ValueError):
                return None
    return None


def parse_scores(events: list[dict[str, Any]], sport: str) -> list[ScoreRecord]:
    """Map a /scores response into ScoreRecords."""
    records = []
    for event in events:
        home, away = event.get("home_team"), event.get("away_team")
        if not home or not away:
            continue
        records.append(
            ScoreRecord(
                event_id=event["id"],
                sport=sport,
                home_team=home,
                away_team=away,
                completed=bool(event.get("completed")),
                home_score=_team_score(event.get("scores"), home),
                away_score=_team_score(event.get("scores"), away),
                commence_time=parse_iso(event.get("commence_time")),
                raw=event,
            )
        )
    return records


class OddsFeedClient:
    """Async client for The Odds API v4."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        feed_config: dict[str, Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.odds_api_key
        self.base_url = (base_url or settings.odds_api_base_url).rstrip("/")
        self.regions = settings.odds_api_regions
        if feed_config is None:
            feed_config = settings.load_defaults_config().get("odds_feed", {})
        self.sport_keys: dict[str, str] = feed_config.get("sport_keys", {})
        self.markets: list[str] = feed_config.get("markets", ["h2h", "spreads", "totals"])
        self.scores_days_from: int = feed_config.get("scores_days_from", 3)
        self._http_client = http_client

    async def __aenter__(self) -> "OddsFeedClient":
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    def sport_key(self, sport: str) -> str:
        try:
            return self.sport_keys[sport.upper()]
        except KeyError:
            raise OddsFeedError(f"No feed sport key for {sport}") from None

    async def _request(self, path: str, params: dict[str, Any], max_retries: int = 3) -> Any:
        """
        GET with retry.

        Raises:
            OddsFeedError: on non-retryable errors or once retries run out
        """
        url = f"{self.base_url}/{path}"
        query = {"apiKey": self.api_key, **params}

        for attempt in range(max_retries + 1):
            try:
                client = await self._get_client()
                response = await client.get(url, params=query)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException:
                if attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning("odds_feed_timeout_retrying", path=path, attempt=attempt, wait_time=wait_time)
                    await asyncio.sleep(wait_time)
                    continue
                raise OddsFeedError("Request timeout", retryable=True)

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                retryable = status == 429 or status >= 500
                if retryable and attempt < max_retries:
                    wait_time = 2**attempt
                    logger.warning(
                        "odds_feed_error_retrying",
                        path=path,
                        status_code=status,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise OddsFeedError(
                    f"Odds feed returned {status} for {path}",
                    status_code=status,
                    retryable=retryable,
                ) from e

    async def health_check(self) -> bool:
        """True when the sports listing answers."""
        try:
            await self._request("sports/", {}, max_retries=0)
        except (OddsFeedError, httpx.HTTPError) as e:
            logger.warning("odds_feed_health_check_failed", error=str(e))
            return False
        return True

    async def fetch_odds(self, sport: str) -> list[SnapshotInput]:
        sport = sport.upper()
        events = await self._request(
            f"sports/{self.sport_key(sport)}/odds/",
            {
                "regions": self.regions,
                "markets": ",".join(self.markets),
                "oddsFormat": "american",
            },
        )
        snapshots = parse_odds_events(events or [], sport, utcnow())
        logger.info("odds_fetched", sport=sport, events=len(events or []), snapshots=len(snapshots))
        return snapshots

    async def fetch_scores(self, sport: str) -> list[ScoreRecord]:
        sport = sport.upper()
        events = await self._request(
            f"sports/{self.sport_key(sport)}/scores/",
            {"daysFrom": self.scores_days_from},
        )
        records = parse_scores(events or [], sport)
        logger.info("scores_fetched", sport=sport, events=len(records))
        return records
