"""
Write a deduplicated batch to the record store.

Tiers go strictly artist -> album -> track -> scrobble, each one finished before
the next starts since children need the row ids their parents were given.
Failures are per row: logged, counted and skipped.
"""
import logging
from dataclasses import dataclass, field

from ingest.dedup import Batch
from ingest.errors import DependencyUnresolved, StoreWriteFailure
from ingest.normalize import AlbumKey, ArtistKey, TrackKey
from ingest.store import RecordStore

LOGGER = logging.getLogger(__name__)

KINDS = ("artist", "album", "track", "scrobble")


@dataclass
class IngestSummary:
    username: str
    events_fetched: int = 0
    events_dropped: int = 0
    written: dict[str, int] = field(default_factory=lambda: {kind: 0 for kind in KINDS})
    skipped: dict[str, int] = field(default_factory=lambda: {kind: 0 for kind in KINDS})
    failures: list[Exception] = field(default_factory=list)

    @property
    def scrobbles_written(self) -> int:
        return self.written["scrobble"]

    @property
    def ok(self) -> bool:
        return not self.failures

    def fail(self, kind: str, error: Exception) -> None:
        LOGGER.warning(str(error))
        self.skipped[kind] += 1
        self.failures.append(error)

    @property
    def message(self) -> str:
        counts = ", ".join(f"{kind}s {self.written[kind]} written/{self.skipped[kind]} skipped"
                           for kind in KINDS)
        return (f"Imported {self.scrobbles_written} scrobbles for {self.username} "
                f"({self.events_fetched} fetched, {self.events_dropped} not yet played; {counts})")


@dataclass
class ResolvedRefs:
    artists: dict[ArtistKey, int] = field(default_factory=dict)
    albums: dict[AlbumKey, int] = field(default_factory=dict)
    tracks: dict[TrackKey, int] = field(default_factory=dict)


def _require(refs: dict, key, kind: str, owner_kind: str, owner_key) -> int:
    if key not in refs:
        raise DependencyUnresolved(owner_kind, owner_key, kind, key)
    return refs[key]


async def write_artists(batch: Batch, store: RecordStore, refs: ResolvedRefs, summary: IngestSummary):
    for key, artist in batch.artists.items():
        try:
            refs.artists[key] = await store.upsert_artist(artist.name, artist.external_id)
        except StoreWriteFailure as e:
            summary.fail("artist", StoreWriteFailure("artist", key, e.reason))
            continue
        summary.written["artist"] += 1


async def write_albums(batch: Batch, store: RecordStore, refs: ResolvedRefs, summary: IngestSummary):
    for key, album in batch.albums.items():
        try:
            artist_ref = _require(refs.artists, album.artist, "artist", "album", key)
            refs.albums[key] = await store.upsert_album(album.name, album.external_id, artist_ref)
        except DependencyUnresolved as e:
            summary.fail("album", e)
            continue
        except StoreWriteFailure as e:
            summary.fail("album", StoreWriteFailure("album", key, e.reason))
            continue
        summary.written["album"] += 1


async def write_tracks(batch: Batch, store: RecordStore, refs: ResolvedRefs, summary: IngestSummary):
    for key, track in batch.tracks.items():
        try:
            artist_ref = _require(refs.artists, track.artist, "artist", "track", key)
            album_ref = None
            if track.album is not None:
                album_ref = _require(refs.albums, track.album, "album", "track", key)

            refs.tracks[key] = await store.upsert_track(track.name, track.external_id,
                                                        album_ref, artist_ref)
        except DependencyUnresolved as e:
            summary.fail("track", e)
            continue
        except StoreWriteFailure as e:
            summary.fail("track", StoreWriteFailure("track", key, e.reason))
            continue
        summary.written["track"] += 1


async def write_scrobbles(batch: Batch, store: RecordStore, refs: ResolvedRefs,
                          summary: IngestSummary, username: str, user_ready: bool = True):
    for normalized in batch.events:
        key = normalized.keys.track
        try:
            if not user_ready:
                raise DependencyUnresolved("scrobble", f"#{normalized.index}", "user", username)
            track_ref = _require(refs.tracks, key, "track", "scrobble", f"#{normalized.index}")
            await store.insert_scrobble(username, track_ref, normalized.event.played_at)
        except DependencyUnresolved as e:
            summary.fail("scrobble", e)
            continue
        except StoreWriteFailure as e:
            summary.fail("scrobble", StoreWriteFailure("scrobble", key, e.reason,
                                                       event_index=normalized.index))
            continue
        summary.written["scrobble"] += 1


async def reconcile(batch: Batch, store: RecordStore, username: str,
                    summary: IngestSummary | None = None, user_ready: bool = True) -> IngestSummary:
    if summary is None:
        summary = IngestSummary(username=username)

    refs = ResolvedRefs()
    await write_artists(batch, store, refs, summary)
    await write_albums(batch, store, refs, summary)
    await write_tracks(batch, store, refs, summary)
    await write_scrobbles(batch, store, refs, summary, username, user_ready)

    LOGGER.info(summary.message)
    return summary
