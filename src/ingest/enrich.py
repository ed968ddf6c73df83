"""
Delayed enrichment of stored albums and tracks: Last.fm album urls, MusicBrainz release years.

Neither runs as part of an import, both can be re-run any time and only touch rows
that are still missing the data.
"""
import asyncio
import logging
from dataclasses import dataclass

import musicbrainzngs as mb
import pylast
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import Settings
from models import Album, Scrobble, Track

LOGGER = logging.getLogger(__name__)

TRACK_SUFFIX_KEYWORDS = ["remaster", "remix", "mix", "version", "anniversary",
                         "edit", "recording", "take"]
PAREN_KEYWORDS = ["remaster", "remix", "mix", "version", "edit",
                  "feat.", "feat", "ft.", "ft", "featuring", "with",
                  "live", "acoustic", "instrumental"]
COLLAB_SEPARATORS = [" & ", " feat. ", " featuring ", " x ", ","]


def setup_musicbrainz(contact: str) -> None:
    mb.set_useragent("lastyear", "1.0", contact=contact)
    mb.set_rate_limit()


def lastfm_network(api_key: str, api_secret: str | None = None) -> pylast.LastFMNetwork:
    network = pylast.LastFMNetwork(api_key=api_key, api_secret=api_secret or "")
    network.enable_rate_limit()
    return network


def preprocess_artist_name(name: str) -> str:
    """Normalize collaboration separators so MusicBrainz searches match more often."""
    name = name.strip()
    for old, new in [(", ", " & "), (" ft. ", " feat. "), (" ft ", " feat. "),
                     (" featuring ", " feat. "), (" x ", " & ")]:
        name = name.replace(old, new)
    return name


def preprocess_track_name(name: str) -> str:
    """Strip version suffixes ("- 2011 Remaster") and parentheticals like "(feat. X)"."""
    name = name.strip()

    if (idx := name.find(" - ")) != -1:
        suffix = name[idx + 3:].lower()
        if any(keyword in suffix for keyword in TRACK_SUFFIX_KEYWORDS):
            name = name[:idx]

    while (start := name.find("(")) != -1:
        end = name.find(")", start)
        if end == -1:
            break

        content = name[start + 1:end].lower()
        if not any(keyword in content for keyword in PAREN_KEYWORDS):
            break
        name = name[:start] + name[end + 1:]

    return " ".join(name.split())


def first_artist(name: str) -> str:
    for sep in COLLAB_SEPARATORS:
        if (idx := name.find(sep)) != -1:
            return name[:idx].strip()
    return name


def _year(date: str | None) -> int | None:
    if date and len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None


def _earliest_year(releases: list[dict]) -> int | None:
    years = [year for release in releases if (year := _year(release.get("date")))]
    return min(years) if years else None


async def _call(func, *args, **kwargs):
    # musicbrainzngs/pylast are blocking and sleep for their rate limit.
    return await asyncio.to_thread(func, *args, **kwargs)


async def release_year_by_album_mbid(mbid: str) -> int | None:
    try:
        res = await _call(mb.get_release_by_id, mbid, includes=["release-groups"])
    except mb.MusicBrainzError as e:
        LOGGER.debug(f"Album MBID lookup failed for {mbid}: {e}")
        return None

    return _year(res["release"].get("release-group", {}).get("first-release-date"))


async def release_year_by_track_mbid(mbid: str) -> int | None:
    try:
        res = await _call(mb.get_recording_by_id, mbid, includes=["releases"])
    except mb.MusicBrainzError as e:
        LOGGER.debug(f"Track MBID lookup failed for {mbid}: {e}")
        return None

    return _earliest_year(res["recording"].get("release-list", []))


async def _search_release_year(artist_name: str, track_name: str) -> int | None:
    try:
        res = await _call(mb.search_recordings, artist=artist_name, recording=track_name, limit=5)
    except mb.MusicBrainzError as e:
        LOGGER.debug(f"Recording search failed for '{artist_name} - {track_name}': {e}")
        return None

    for recording in res.get("recording-list", []):
        if year := _earliest_year(recording.get("release-list", [])):
            return year
    return None


async def release_year_by_name(artist_name: str, track_name: str) -> int | None:
    artist = preprocess_artist_name(artist_name)
    track = preprocess_track_name(track_name)
    if artist != artist_name or track != track_name:
        LOGGER.debug(f"Preprocessed: artist='{artist_name}' -> '{artist}', "
                     f"track='{track_name}' -> '{track}'")

    if year := await _search_release_year(artist, track):
        return year

    if (first := first_artist(artist)) != artist:
        LOGGER.debug(f"Fallback: trying first artist only: '{first}'")
        return await _search_release_year(first, track)

    return None


@dataclass
class EnrichmentSummary:
    processed: int = 0
    mbid_found: int = 0
    fuzzy_found: int = 0
    not_found: int = 0

    @property
    def found(self) -> int:
        return self.mbid_found + self.fuzzy_found


async def find_release_years(session: AsyncSession, username: str, year: int) -> EnrichmentSummary:
    """Fill release years for the albums and tracks `username` scrobbled in `year`."""
    summary = EnrichmentSummary()
    scrobbled = select(Scrobble.track_id).where(Scrobble.username == username, Scrobble.year == year)

    # Pass 1: albums by MBID.
    albums = (await session.execute(
        select(Album)
        .join(Track, Track.album_id == Album.album_id)
        .where(Track.track_id.in_(scrobbled),
               Album.external_id.is_not(None),
               Album.release_year.is_(None))
        .distinct()
    )).scalars().all()

    LOGGER.info(f"Looking up release years for {len(albums)} albums.")
    for album in albums:
        album.release_year = await release_year_by_album_mbid(album.external_id)
    await session.commit()

    # Pass 2: tracks, from their album, their own MBID, or a search by name.
    tracks = (await session.execute(
        select(Track)
        .options(selectinload(Track.album), selectinload(Track.artist))
        .where(Track.track_id.in_(scrobbled), Track.release_year.is_(None))
    )).scalars().all()

    LOGGER.info(f"Looking up release years for {len(tracks)} tracks.")
    for track in tracks:
        found = None
        if track.album is not None and track.album.release_year:
            found = track.album.release_year
        elif track.external_id:
            found = await release_year_by_track_mbid(track.external_id)

        if found:
            summary.mbid_found += 1
        elif found := await release_year_by_name(track.artist.name, track.name):
            summary.fuzzy_found += 1
        else:
            summary.not_found += 1

        track.release_year = found
        summary.processed += 1
        if summary.processed % 100 == 0:
            LOGGER.info(f"Progress: {summary.processed}/{len(tracks)} tracks processed")

    await session.commit()

    LOGGER.info(f"Release year lookup complete: processed={summary.processed}, "
                f"mbid_found={summary.mbid_found}, fuzzy_found={summary.fuzzy_found}, "
                f"not_found={summary.not_found}")
    return summary


async def find_album_urls(session: AsyncSession, network: pylast.LastFMNetwork | None = None) -> int:
    """Store the Last.fm url of every album that has an MBID but no url yet."""
    if network is None:
        settings = Settings.from_env()
        if not settings.lastfm_api_key:
            raise ValueError("LAST_FM_APPLICATION_API_KEY environment variable not set")
        network = lastfm_network(settings.lastfm_api_key, settings.lastfm_api_secret)

    albums = (await session.execute(
        select(Album).where(Album.external_id.is_not(None), Album.album_url.is_(None))
    )).scalars().all()

    LOGGER.info(f"Looking up Last.fm urls for {len(albums)} albums.")
    updated = 0
    for album in albums:
        try:
            lfm_album = await _call(network.get_album_by_mbid, album.external_id)
            album.album_url = lfm_album.get_url()
        except pylast.PyLastError as e:
            LOGGER.warning(f"Could not get Last.fm url for album '{album.name}' ({album.external_id}): {e}")
            continue
        updated += 1

    await session.commit()
    LOGGER.info(f"Stored {updated} album urls.")
    return updated
