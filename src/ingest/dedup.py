"""Fold a batch of normalized events into unique artists, albums and tracks."""
import logging
from dataclasses import dataclass, field
from typing import Iterable

from ingest.events import PlayEvent
from ingest.normalize import AlbumKey, ArtistKey, NormalizedEvent, TrackKey

LOGGER = logging.getLogger(__name__)


@dataclass
class ArtistRecord:
    key: ArtistKey
    name: str
    external_id: str | None = None

@dataclass
class AlbumRecord:
    key: AlbumKey
    name: str
    artist: ArtistKey
    external_id: str | None = None

@dataclass
class TrackRecord:
    key: TrackKey
    name: str
    artist: ArtistKey
    album: AlbumKey | None = None
    external_id: str | None = None


@dataclass
class Batch:
    """Unique entities of one run, each dict ordered by first observation."""
    artists: dict[ArtistKey, ArtistRecord] = field(default_factory=dict)
    albums: dict[AlbumKey, AlbumRecord] = field(default_factory=dict)
    tracks: dict[TrackKey, TrackRecord] = field(default_factory=dict)
    events: list[NormalizedEvent] = field(default_factory=list)

    def observe(self, normalized: NormalizedEvent) -> None:
        event, keys = normalized.event, normalized.keys

        self._observe_artist(keys.artist, event)
        if keys.album is not None:
            self._observe_album(keys.album, keys.artist, event)
        self._observe_track(keys.track, keys.artist, keys.album, event)

        self.events.append(normalized)

    # Identity and position are fixed on first sight, later sightings only refresh the name.
    def _observe_artist(self, key: ArtistKey, event: PlayEvent) -> None:
        if record := self.artists.get(key):
            record.name = event.artist_name
            return

        self.artists[key] = ArtistRecord(key=key, name=event.artist_name,
                                         external_id=key.external_id)

    def _observe_album(self, key: AlbumKey, artist: ArtistKey, event: PlayEvent) -> None:
        if record := self.albums.get(key):
            record.name = event.album_name
            return

        self.albums[key] = AlbumRecord(key=key, name=event.album_name, artist=artist,
                                       external_id=key.external_id)

    def _observe_track(self, key: TrackKey, artist: ArtistKey, album: AlbumKey | None,
                       event: PlayEvent) -> None:
        if record := self.tracks.get(key):
            record.name = event.track_name
            return

        self.tracks[key] = TrackRecord(key=key, name=event.track_name, artist=artist,
                                       album=album, external_id=key.external_id)


def deduplicate(normalized_events: Iterable[NormalizedEvent]) -> Batch:
    batch = Batch()
    for normalized in normalized_events:
        batch.observe(normalized)

    LOGGER.info(f"Deduplicated {len(batch.events)} events into {len(batch.artists)} artists, "
                f"{len(batch.albums)} albums and {len(batch.tracks)} tracks.")
    return batch
