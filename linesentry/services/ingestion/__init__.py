"""Ingestion module for LineSentry."""

from linesentry.services.ingestion.odds_feed import OddsFeedClient, ScoreRecord
from linesentry.services.ingestion.results import store_event_results
from linesentry.services.ingestion.snapshots import (
    MarketKeyData,
    SnapshotInput,
    SnapshotStore,
)

__all__ = [
    "MarketKeyData",
    "OddsFeedClient",
    "ScoreRecord",
    "SnapshotInput",
    "SnapshotStore",
    "store_event_results",
]
