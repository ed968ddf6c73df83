"""
Identity keys for artists, albums and tracks.

An entity is identified by its MusicBrainz id when Last.fm reports a valid one,
otherwise by its normalized name plus the identity of whatever owns it. Keys are
plain frozen values so two keys are equal exactly when all their parts are.
"""
import re
import logging
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from models import MBID_REGEX
from ingest.errors import MalformedIdentifier
from ingest.events import PlayEvent

LOGGER = logging.getLogger(__name__)

_MBID = re.compile(MBID_REGEX)


def parse_external_id(value: str) -> str:
    canonical = value.strip().lower()
    if not _MBID.match(canonical):
        raise MalformedIdentifier(value)
    return canonical


def canonical_external_id(value: str | None) -> str | None:
    """Canonical form of `value`, or None when it is missing or malformed."""
    if value is None or not value.strip():
        return None

    try:
        return parse_external_id(value)
    except MalformedIdentifier:
        LOGGER.debug(f"Ignoring malformed external id {value!r}, falling back to name.")
        return None


def normalize_name(name: str) -> str:
    return " ".join(unicodedata.normalize("NFKC", name).split()).casefold()


@dataclass(frozen=True)
class ArtistKey:
    external_id: str | None = None
    name: str | None = None

    def __str__(self):
        return f"artist[{self.external_id or repr(self.name)}]"


@dataclass(frozen=True)
class AlbumKey:
    external_id: str | None = None
    name: str | None = None
    artist: Optional[ArtistKey] = None

    def __str__(self):
        if self.external_id:
            return f"album[{self.external_id}]"
        return f"album[{self.name!r} by {self.artist}]"


@dataclass(frozen=True)
class TrackKey:
    external_id: str | None = None
    name: str | None = None
    album: Optional[AlbumKey] = None
    artist: Optional[ArtistKey] = None

    def __str__(self):
        if self.external_id:
            return f"track[{self.external_id}]"
        return f"track[{self.name!r} on {self.album} by {self.artist}]"


def artist_key(name: str, external_id: str | None = None) -> ArtistKey:
    if mbid := canonical_external_id(external_id):
        return ArtistKey(external_id=mbid)
    return ArtistKey(name=normalize_name(name))


def album_key(name: str, artist: ArtistKey, external_id: str | None = None) -> AlbumKey:
    if mbid := canonical_external_id(external_id):
        return AlbumKey(external_id=mbid)
    return AlbumKey(name=normalize_name(name), artist=artist)


def track_key(name: str, artist: ArtistKey, album: AlbumKey | None,
              external_id: str | None = None) -> TrackKey:
    if mbid := canonical_external_id(external_id):
        return TrackKey(external_id=mbid)
    return TrackKey(name=normalize_name(name), album=album, artist=artist)


@dataclass(frozen=True)
class EventKeys:
    artist: ArtistKey
    album: AlbumKey | None
    track: TrackKey


def keys_for(event: PlayEvent) -> EventKeys:
    artist = artist_key(event.artist_name, event.artist_id)

    # No album name means a single/EP, an orphan album id is not enough to name one.
    album = None
    if event.album_name is not None:
        album = album_key(event.album_name, artist, event.album_id)

    track = track_key(event.track_name, artist, album, event.track_id)
    return EventKeys(artist=artist, album=album, track=track)


@dataclass(frozen=True)
class NormalizedEvent:
    index: int
    event: PlayEvent
    keys: EventKeys


def normalize_events(events: Iterable[PlayEvent]) -> Iterator[NormalizedEvent]:
    for i, event in enumerate(events):
        yield NormalizedEvent(index=i, event=event, keys=keys_for(event))
