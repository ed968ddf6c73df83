from hypothesis import given, settings, strategies as st

from ingest.dedup import deduplicate
from ingest.normalize import ArtistKey, keys_for, normalize_events
from tests.mocks.events import BONOBO, event, jamie_xx
from tests.strategies.events import play_event_strat


def dedup(*events):
    return deduplicate(normalize_events(events))


def test_same_artist_without_id_is_one_artist():
    batch = dedup(event(track="Kerala"), event(track="Cirrus", album="The North Borders"))

    assert list(batch.artists) == [ArtistKey(name="bonobo")]
    assert len(batch.albums) == 2
    assert len(batch.tracks) == 2


def test_name_variants_with_same_id_are_one_artist():
    batch = dedup(event(artist="Bonobo", artist_id=BONOBO),
                  event(artist="Bonobo ", artist_id=BONOBO.upper()))

    assert list(batch.artists) == [ArtistKey(external_id=BONOBO)]
    assert batch.artists[ArtistKey(external_id=BONOBO)].external_id == BONOBO


def test_same_album_title_by_two_artists_is_two_albums():
    batch = dedup(event(artist="Bonobo", album="Mirrors", track="Mirrors"),
                  event(artist="Fink", album="Mirrors", track="Mirrors"))

    assert len(batch.artists) == 2
    assert len(batch.albums) == 2
    assert len(batch.tracks) == 2


def test_latest_name_wins_but_first_position_is_kept():
    batch = dedup(event(artist="Bonobo", played_at=1),
                  event(artist="Jamie xx", album="In Colour", track="Gosh", played_at=2),
                  event(artist="BONOBO", played_at=3))

    assert [a.name for a in batch.artists.values()] == ["BONOBO", "Jamie xx"]


def test_albumless_event_creates_no_album():
    batch = dedup(event(track="Flashlight", album=None))

    assert batch.albums == {}
    assert next(iter(batch.tracks.values())).album is None


def test_every_event_is_kept_for_scrobbles():
    batch = dedup(jamie_xx(), jamie_xx(), event())

    assert len(batch.events) == 3
    assert len(batch.tracks) == 2
    assert [n.index for n in batch.events] == [0, 1, 2]


@settings(deadline=None)
@given(st.lists(play_event_strat(played=True, artists=["Bonobo", "bonobo", "Fink"]), max_size=20))
def test_batch_holds_exactly_the_distinct_keys(events):
    batch = dedup(*events)
    keys = [keys_for(e) for e in events]

    assert set(batch.artists) == {k.artist for k in keys}
    assert set(batch.albums) == {k.album for k in keys if k.album is not None}
    assert set(batch.tracks) == {k.track for k in keys}
    assert len(batch.events) == len(events)


@settings(deadline=None)
@given(st.lists(play_event_strat(played=True), max_size=20))
def test_children_only_reference_batch_parents(events):
    batch = dedup(*events)

    for album in batch.albums.values():
        assert album.artist in batch.artists
    for track in batch.tracks.values():
        assert track.artist in batch.artists
        assert track.album is None or track.album in batch.albums
