from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from models import Album, Artist, Scrobble, Track, User
from ingest.errors import DependencyUnresolved, InvalidImportYear, StoreWriteFailure
from ingest.pipeline import check_year, ingest_events, run_import, year_window
from tests.conftest import count_rows
from tests.mocks.events import IN_WAVES, JAMIE_XX_ARTIST, TREAT_EACH_OTHER_RIGHT, event, jamie_xx
from tests.mocks.source import FakeSource
from tests.mocks.store import FlakyStore

pytestmark = pytest.mark.store

USER = "jellebouwman"


async def test_import_jamie_xx(store, db_session):
    source = FakeSource([jamie_xx()])

    summary = await run_import(USER, 2024, source, store, limit=50)

    assert summary.ok
    assert summary.scrobbles_written == 1
    for model in (User, Artist, Album, Track, Scrobble):
        assert await count_rows(db_session, model) == 1

    artist = (await db_session.execute(select(Artist))).scalar_one()
    album = (await db_session.execute(select(Album))).scalar_one()
    track = (await db_session.execute(select(Track))).scalar_one()
    scrobble = (await db_session.execute(select(Scrobble))).scalar_one()

    assert (artist.name, artist.external_id) == ("Jamie xx", JAMIE_XX_ARTIST)
    assert (album.name, album.external_id, album.artist_id) == ("In Waves", IN_WAVES, artist.artist_id)
    assert track.external_id == TREAT_EACH_OTHER_RIGHT
    assert (track.album_id, track.artist_id) == (album.album_id, artist.artist_id)
    assert scrobble.username == USER
    assert scrobble.year == 2024
    assert scrobble.played_at_epoch == 1733646660

    window, limit, user = source.calls[0]
    assert window == year_window(2024)
    assert (limit, user) == (50, USER)


async def test_unavailable_source_imports_nothing(store, db_session):
    summary = await run_import(USER, 2024, FakeSource(None), store)

    assert summary.ok
    assert summary.events_fetched == 0
    assert summary.scrobbles_written == 0
    assert await count_rows(db_session, Scrobble) == 0
    assert await count_rows(db_session, User) == 0


async def test_now_playing_is_dropped(store, db_session):
    summary = await ingest_events([event(played_at=None, now_playing=True), jamie_xx()], USER, store)

    assert summary.events_fetched == 2
    assert summary.events_dropped == 1
    assert summary.scrobbles_written == 1
    assert await count_rows(db_session, Artist) == 1


async def test_only_unplayed_events_write_nothing(store, db_session):
    summary = await ingest_events([event(played_at=None, now_playing=True)], USER, store)

    assert summary.scrobbles_written == 0
    assert await count_rows(db_session, User) == 0
    assert await count_rows(db_session, Artist) == 0


async def test_overlapping_runs_share_entities(store, db_session):
    await ingest_events([jamie_xx(), event()], USER, store)
    await ingest_events([event(played_at=1733700000)], USER, store)

    assert await count_rows(db_session, Artist) == 2
    assert await count_rows(db_session, Track) == 2
    assert await count_rows(db_session, Scrobble) == 3
    assert await store.scrobble_count(USER, 2024) == 3


@pytest.mark.parametrize("year", [1999, 2001, datetime.now(timezone.utc).year + 1])
async def test_invalid_year_is_rejected_before_fetching(store, year):
    source = FakeSource([jamie_xx()])

    with pytest.raises(InvalidImportYear):
        await run_import(USER, year, source, store)
    assert source.calls == []


def test_year_bounds():
    check_year(2002)
    check_year(datetime.now(timezone.utc).year)

    with pytest.raises(ValueError):
        check_year(2001)


def test_year_window_spans_the_utc_year():
    window = year_window(2024)

    assert window.from_ == 1704067200
    assert window.to == 1735689600
    assert window.to - window.from_ == 366 * 24 * 3600


async def test_failed_user_still_reports_a_summary(db_session):
    store = FlakyStore(db_session, fail_user=True)

    summary = await run_import(USER, 2024, FakeSource([jamie_xx(), event()]), store)

    assert not summary.ok
    assert summary.written == {"artist": 2, "album": 2, "track": 2, "scrobble": 0}
    assert summary.skipped["scrobble"] == 2

    user_failure, *unresolved = summary.failures
    assert isinstance(user_failure, StoreWriteFailure) and user_failure.kind == "user"
    assert [(e.missing, e.missing_key) for e in unresolved] == [("user", USER), ("user", USER)]

    assert await count_rows(db_session, Artist) == 2
    assert await count_rows(db_session, Scrobble) == 0
