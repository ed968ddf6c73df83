"""
One ingestion run: Draft -> Validated -> Normalized -> Deduplicated -> Written.

Runs never resume, each one re-fetches its whole window and leans on the store's
upserts to keep artists, albums and tracks unique across overlapping runs.
"""
import logging
from datetime import datetime, timezone
from enum import Enum

from config import FIRST_SCROBBLE_YEAR, MAX_FETCH_LIMIT
from ingest.dedup import deduplicate
from ingest.errors import InvalidImportYear, StoreWriteFailure
from ingest.events import PlayEvent
from ingest.normalize import normalize_events
from ingest.source import LastFMSource, Window
from ingest.store import RecordStore
from ingest.validate import validate_events
from ingest.writer import IngestSummary, reconcile

LOGGER = logging.getLogger(__name__)


class RunState(Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    NORMALIZED = "normalized"
    DEDUPLICATED = "deduplicated"
    WRITTEN = "written"


def check_year(year: int) -> None:
    latest = datetime.now(timezone.utc).year
    if year < FIRST_SCROBBLE_YEAR or year > latest:
        raise InvalidImportYear(year, latest)


def year_window(year: int) -> Window:
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return Window(from_=int(start.timestamp()), to=int(end.timestamp()))


async def ingest_events(events: list[PlayEvent], username: str, store: RecordStore,
                        summary: IngestSummary | None = None) -> IngestSummary:
    if summary is None:
        summary = IngestSummary(username=username)
    summary.events_fetched = len(events)

    state = RunState.DRAFT
    LOGGER.debug(f"Run for '{username}': {state.value}, {len(events)} events.")

    valid = list(validate_events(events))
    summary.events_dropped = len(events) - len(valid)
    state = RunState.VALIDATED
    LOGGER.debug(f"Run for '{username}': {state.value}, dropped {summary.events_dropped} unplayed.")

    # Scrobbles reference their user by name.
    user_ready = bool(valid)
    if valid:
        try:
            await store.upsert_user(username)
        except StoreWriteFailure as e:
            LOGGER.warning(f"{e}, its scrobbles will be skipped.")
            summary.failures.append(e)
            user_ready = False

    normalized = normalize_events(valid)
    state = RunState.NORMALIZED
    LOGGER.debug(f"Run for '{username}': {state.value}.")

    batch = deduplicate(normalized)
    state = RunState.DEDUPLICATED
    LOGGER.debug(f"Run for '{username}': {state.value}.")

    await reconcile(batch, store, username, summary, user_ready)
    state = RunState.WRITTEN
    LOGGER.debug(f"Run for '{username}': {state.value}.")

    return summary


async def run_import(username: str, year: int, source: LastFMSource, store: RecordStore,
                     limit: int = MAX_FETCH_LIMIT) -> IngestSummary:
    check_year(year)
    LOGGER.info(f"Starting import for user '{username}', year {year}")

    events = await source.fetch_events(year_window(year), limit, username)
    if events is None:
        LOGGER.warning(f"No events for '{username}' in {year}, the source was unavailable.")
        events = []
    elif not events:
        LOGGER.info(f"No scrobbles found for user '{username}' in year {year}")

    return await ingest_events(events, username, store)
