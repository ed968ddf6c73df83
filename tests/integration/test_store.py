import pytest
from sqlalchemy import select

from models import Artist, Scrobble, Track
from ingest.errors import StoreWriteFailure
from tests.conftest import count_rows
from tests.mocks.events import BONOBO

pytestmark = pytest.mark.store


async def test_artist_upsert_by_name_is_idempotent(store, db_session):
    first = await store.upsert_artist("Bonobo")
    second = await store.upsert_artist("bonobo ")

    assert first == second
    assert await count_rows(db_session, Artist) == 1

    artist = (await db_session.execute(select(Artist))).scalar_one()
    assert artist.name == "bonobo "


async def test_artist_upsert_by_external_id_refreshes_name(store, db_session):
    first = await store.upsert_artist("Bonobo", BONOBO)
    second = await store.upsert_artist("Bonobo (UK)", BONOBO)

    assert first == second
    artist = (await db_session.execute(select(Artist))).scalar_one()
    assert artist.name == "Bonobo (UK)"
    assert artist.external_id == BONOBO


async def test_same_name_with_and_without_id_are_different_rows(store):
    assert await store.upsert_artist("Bonobo", BONOBO) != await store.upsert_artist("Bonobo")


async def test_malformed_external_id_is_rejected_by_the_schema(store, db_session):
    with pytest.raises(StoreWriteFailure) as exc_info:
        await store.upsert_artist("Bonobo", "not-a-uuid")

    assert exc_info.value.kind == "artist"
    assert await count_rows(db_session, Artist) == 0

    # The session is still usable after the failed write.
    assert await store.upsert_artist("Bonobo", BONOBO)


async def test_upper_case_external_id_is_rejected_by_the_schema(store):
    with pytest.raises(StoreWriteFailure):
        await store.upsert_artist("Bonobo", BONOBO.upper())


async def test_album_name_is_scoped_to_artist(store):
    bonobo = await store.upsert_artist("Bonobo")
    fink = await store.upsert_artist("Fink")

    assert await store.upsert_album("Mirrors", None, bonobo) != await store.upsert_album("Mirrors", None, fink)
    assert await store.upsert_album("Mirrors", None, bonobo) == await store.upsert_album("MIRRORS", None, bonobo)


async def test_single_tracks_are_unique(store, db_session):
    artist = await store.upsert_artist("Bonobo")

    first = await store.upsert_track("Flashlight", None, None, artist)
    second = await store.upsert_track("Flashlight", None, None, artist)

    assert first == second
    assert await count_rows(db_session, Track) == 1


async def test_single_and_album_track_with_same_title_are_distinct(store, db_session):
    artist = await store.upsert_artist("Bonobo")
    album = await store.upsert_album("Fragments", None, artist)

    single = await store.upsert_track("Rosewood", None, None, artist)
    on_album = await store.upsert_track("Rosewood", None, album, artist)

    assert single != on_album
    assert await count_rows(db_session, Track) == 2


async def test_unknown_parent_is_a_write_failure(store):
    with pytest.raises(StoreWriteFailure):
        await store.upsert_album("Migration", None, 9999)


async def test_scrobbles_are_appended_with_their_year(store, db_session):
    await store.upsert_user("jellebouwman")
    artist = await store.upsert_artist("Bonobo")
    track = await store.upsert_track("Kerala", None, None, artist)

    await store.insert_scrobble("jellebouwman", track, 1733646660)
    await store.insert_scrobble("jellebouwman", track, 1733646660)
    await store.insert_scrobble("jellebouwman", track, 1703951089)

    assert await count_rows(db_session, Scrobble) == 3
    assert await store.scrobble_count("jellebouwman") == 3
    assert await store.scrobble_count("jellebouwman", 2024) == 2
    assert await store.scrobble_count("jellebouwman", 2023) == 1
    assert await store.scrobble_count("someone-else") == 0


async def test_scrobble_needs_a_known_user(store):
    artist = await store.upsert_artist("Bonobo")
    track = await store.upsert_track("Kerala", None, None, artist)

    with pytest.raises(StoreWriteFailure):
        await store.insert_scrobble("nobody", track, 1733646660)


async def test_user_upsert_is_idempotent(store, db_session):
    await store.upsert_user("jellebouwman")
    await store.upsert_user("jellebouwman")

    from models import User
    assert await count_rows(db_session, User) == 1


async def test_user_upsert_keeps_avatar(store, db_session):
    from models import User

    await store.upsert_user("jellebouwman", "https://lastfm.freetls.fastly.net/i/u/avatar.png")
    await store.upsert_user("jellebouwman")

    user = (await db_session.execute(select(User))).scalar_one()
    assert user.avatar_url == "https://lastfm.freetls.fastly.net/i/u/avatar.png"
