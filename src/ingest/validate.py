import logging
from typing import Iterable, Iterator

from ingest.events import PlayEvent

LOGGER = logging.getLogger(__name__)


def is_played(event: PlayEvent) -> bool:
    """A play counts once Last.fm has stamped it, tracks still playing carry no date."""
    return event.played_at is not None and not event.now_playing


def validate_events(events: Iterable[PlayEvent]) -> Iterator[PlayEvent]:
    for event in events:
        if not is_played(event):
            LOGGER.debug(f"Skipping currently playing track: {event.artist_name} - {event.track_name}")
            continue

        yield event
