"""
Play events and the Last.fm `user.getRecentTracks` payload they are parsed from.

The pydantic models are the only place that knows the wire format; everything
downstream works on `PlayEvent`.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class PlayEvent:
    track_name: str
    artist_name: str
    track_id: str | None = None
    artist_id: str | None = None
    album_name: str | None = None
    album_id: str | None = None
    played_at: int | None = None  # Epoch seconds, None while still playing.
    now_playing: bool = False
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


def _none_if_blank(value: str | None) -> str | None:
    if value is None or value.strip() == "":
        return None
    return value


class EntityIdentifier(BaseModel):
    mbid: str = ""
    text: str = Field("", alias="#text")


class PlayedDate(BaseModel):
    uts: int
    text: str = Field("", alias="#text")


class TrackAttr(BaseModel):
    nowplaying: bool = False

    @field_validator("nowplaying", mode="before")
    @classmethod
    def _parse_bool(cls, value):
        if isinstance(value, str):
            if value not in ("true", "false"):
                raise ValueError(f"Unexpected nowplaying value {value!r}")
            return value == "true"
        return value


class RecentTrack(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    artist: EntityIdentifier
    album: EntityIdentifier
    mbid: str = ""
    name: str
    url: str = ""
    streamable: bool = False
    date: Optional[PlayedDate] = None
    attr: Optional[TrackAttr] = Field(None, alias="@attr")

    @field_validator("streamable", mode="before")
    @classmethod
    def _parse_streamable(cls, value):
        # Last.fm still encodes this one as "0"/"1".
        if isinstance(value, str):
            if value not in ("0", "1"):
                raise ValueError(f"Unexpected streamable value {value!r}")
            return value == "1"
        return value

    def to_event(self, raw: dict[str, Any] | None = None) -> PlayEvent:
        return PlayEvent(
            track_name=self.name,
            track_id=_none_if_blank(self.mbid),
            artist_name=self.artist.text,
            artist_id=_none_if_blank(self.artist.mbid),
            album_name=_none_if_blank(self.album.text),
            album_id=_none_if_blank(self.album.mbid),
            played_at=self.date.uts if self.date else None,
            now_playing=bool(self.attr and self.attr.nowplaying),
            raw=raw or {},
        )


class PageAttr(BaseModel):
    user: str
    page: int
    perPage: int
    totalPages: int
    total: int


class RecentTracks(BaseModel):
    track: list[RecentTrack]
    attr: PageAttr = Field(alias="@attr")

    @field_validator("track", mode="before")
    @classmethod
    def _single_track(cls, value):
        # A window holding exactly one scrobble comes back as an object, not a list.
        if isinstance(value, dict):
            return [value]
        return value


class RecentTracksResponse(BaseModel):
    recenttracks: RecentTracks


class LastFMErrorResponse(BaseModel):
    error: int
    message: str = ""


def parse_recent_tracks(body: dict[str, Any]) -> list[PlayEvent]:
    """Validate a `user.getRecentTracks` body, raises pydantic.ValidationError on mismatch."""
    response = RecentTracksResponse.model_validate(body)

    raw_tracks = body["recenttracks"]["track"]
    if isinstance(raw_tracks, dict):
        raw_tracks = [raw_tracks]

    return [track.to_event(raw) for track, raw in zip(response.recenttracks.track, raw_tracks)]
