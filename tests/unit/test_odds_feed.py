"""Tests for The Odds API client and event result storage."""

from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import select

from linesentry.models import EventResult
from linesentry.services.errors import OddsFeedError
from linesentry.services.ingestion import OddsFeedClient, ScoreRecord, store_event_results
from linesentry.services.ingestion.odds_feed import parse_odds_events, parse_scores
from linesentry.services.ingestion.results import result_status

CAPTURED = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)

ODDS_EVENTS = [
    {
        "id": "evt-1",
        "sport_key": "basketball_nba",
        "commence_time": "2026-10-19T23:30:00Z",
        "home_team": "Boston Celtics",
        "away_team": "New York Knicks",
        "bookmakers": [
            {
                "key": "draftkings",
                "markets": [
                    {
                        "key": "spreads",
                        "last_update": "2026-10-19T19:55:00Z",
                        "outcomes": [
                            {"name": "Boston Celtics", "price": -110, "point": -3.5},
                            {"name": "New York Knicks", "price": -110, "point": 3.5},
                        ],
                    },
                    {
                        "key": "h2h",
                        "outcomes": [
                            {"name": "Boston Celtics", "price": -160},
                            {"name": "New York Knicks", "price": None},
                        ],
                    },
                ],
            }
        ],
    }
]

SCORE_EVENTS = [
    {
        "id": "evt-1",
        "completed": True,
        "commence_time": "2026-10-19T23:30:00Z",
        "home_team": "Boston Celtics",
        "away_team": "New York Knicks",
        "scores": [
            {"name": "Boston Celtics", "score": "110"},
            {"name": "New York Knicks", "score": "104"},
        ],
    },
    {
        "id": "evt-2",
        "completed": False,
        "home_team": "Denver Nuggets",
        "away_team": "Utah Jazz",
        "scores": None,
    },
]


def feed_client(handler) -> OddsFeedClient:
    return OddsFeedClient(
        api_key="test-key",
        base_url="https://odds.test/v4/",
        feed_config={"sport_keys": {"NBA": "basketball_nba"}, "markets": ["spreads"]},
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestParsing:
    def test_odds_events_flatten_per_outcome(self):
        snapshots = parse_odds_events(ODDS_EVENTS, "NBA", CAPTURED)

        assert len(snapshots) == 3, "Outcomes without a price are skipped"
        first = snapshots[0]
        assert first.market_key.bookmaker == "draftkings"
        assert first.market_key.market_type == "spreads"
        assert first.market_key.description == "New York Knicks @ Boston Celtics"
        assert first.market_key.commence_time == datetime(2026, 10, 19, 23, 30, tzinfo=timezone.utc)
        assert first.price == -110
        assert first.point == -3.5

    def test_market_last_update_is_capture_time(self):
        snapshots = parse_odds_events(ODDS_EVENTS, "NBA", CAPTURED)

        assert snapshots[0].captured_at == datetime(2026, 10, 19, 19, 55, tzinfo=timezone.utc)
        assert snapshots[2].captured_at == CAPTURED, "Falls back to the poll time"

    def test_player_markets_use_description(self):
        events = [
            {
                "id": "evt-9",
                "home_team": "A",
                "away_team": "B",
                "bookmakers": [
                    {
                        "key": "fanduel",
                        "markets": [
                            {
                                "key": "player_points",
                                "outcomes": [
                                    {"name": "Over", "description": "Jayson Tatum", "price": -115, "point": 27.5}
                                ],
                            }
                        ],
                    }
                ],
            }
        ]

        [snapshot] = parse_odds_events(events, "NBA", CAPTURED)

        assert snapshot.market_key.player_name == "Jayson Tatum"
        assert snapshot.market_key.commence_time is None

    def test_scores(self):
        records = parse_scores(SCORE_EVENTS, "NBA")

        assert (records[0].home_score, records[0].away_score) == (110, 104)
        assert records[0].completed
        assert records[1].home_score is None

    @pytest.mark.parametrize(
        "completed,home,away,expected",
        [
            (True, 110, 104, "final"),
            (True, None, None, "scheduled"),
            (False, 50, 48, "in_progress"),
            (False, None, None, "scheduled"),
        ],
    )
    def test_result_status(self, completed, home, away, expected):
        record = ScoreRecord("evt", "NBA", "A", "B", completed, home, away)

        assert result_status(record) == expected


class TestOddsFeedClient:
    """Test requests and retries against a mock transport."""

    @pytest.mark.asyncio
    async def test_fetch_odds(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=ODDS_EVENTS)

        async with feed_client(handler) as client:
            snapshots = await client.fetch_odds("nba")

        assert len(snapshots) == 3
        assert all(s.market_key.sport == "NBA" for s in snapshots)
        request = seen[0]
        assert request.url.path == "/v4/sports/basketball_nba/odds/"
        assert request.url.params["apiKey"] == "test-key"
        assert request.url.params["oddsFormat"] == "american"
        assert request.url.params["markets"] == "spreads"

    @pytest.mark.asyncio
    async def test_fetch_scores(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["daysFrom"] == "3"
            return httpx.Response(200, json=SCORE_EVENTS)

        async with feed_client(handler) as client:
            records = await client.fetch_scores("NBA")

        assert [r.event_id for r in records] == ["evt-1", "evt-2"]

    @pytest.mark.asyncio
    async def test_unknown_sport(self):
        client = feed_client(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(OddsFeedError):
            await client.fetch_odds("CRICKET")

    @pytest.mark.asyncio
    async def test_server_error_without_retries(self):
        client = feed_client(lambda request: httpx.Response(500))

        with pytest.raises(OddsFeedError) as exc_info:
            await client._request("sports/basketball_nba/odds/", {}, max_retries=0)

        assert exc_info.value.status_code == 500
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401)

        client = feed_client(handler)

        with pytest.raises(OddsFeedError) as exc_info:
            await client._request("sports/", {})

        assert len(calls) == 1
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, monkeypatch):
        responses = [httpx.Response(429), httpx.Response(200, json=[])]
        waits = []

        async def fake_sleep(seconds):
            waits.append(seconds)

        monkeypatch.setattr("linesentry.services.ingestion.odds_feed.asyncio.sleep", fake_sleep)
        client = feed_client(lambda request: responses.pop(0))

        assert await client._request("sports/", {}) == []
        assert waits == [1]


class TestStoreEventResults:
    @pytest.mark.asyncio
    async def test_final_result_is_not_downgraded(self, session):
        records = parse_scores(SCORE_EVENTS, "NBA")
        await store_event_results(session, records)
        await session.commit()

        stale = ScoreRecord(
            "evt-1", "NBA", "Boston Celtics", "New York Knicks", False, 90, 88
        )
        await store_event_results(session, [stale])
        await session.commit()

        result = await session.execute(select(EventResult).order_by(EventResult.event_id))
        rows = result.scalars().all()
        assert [r.status for r in rows] == ["final", "scheduled"]
        assert (rows[0].home_score, rows[0].away_score) == (110, 104)
        assert rows[0].is_final

    @pytest.mark.asyncio
    async def test_in_progress_becomes_final(self, session):
        live = ScoreRecord("evt-1", "NBA", "Boston Celtics", "New York Knicks", False, 60, 58)
        await store_event_results(session, [live])
        await session.commit()

        stats = await store_event_results(session, parse_scores(SCORE_EVENTS[:1], "NBA"))
        await session.commit()

        assert stats["final"] == 1
        row = (await session.execute(select(EventResult))).scalar_one()
        assert row.status == "final"
        assert row.home_score == 110


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_healthy(self):
        client = feed_client(lambda request: httpx.Response(200, json=[]))

        assert await client.health_check()

    @pytest.mark.asyncio
    async def test_unhealthy_on_error_status(self):
        client = feed_client(lambda request: httpx.Response(401))

        assert not await client.health_check()

    @pytest.mark.asyncio
    async def test_unhealthy_on_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = feed_client(handler)

        assert not await client.health_check()
