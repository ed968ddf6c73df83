import sys
import os
import asyncio
import logging
import traceback
from datetime import datetime, timezone

if "-t" in sys.argv or "--test" in sys.argv:
    os.environ["TEST_MODE"] = "true"

from logger import setup_logging, parse_level
from config import Settings

LOGGER = logging.getLogger(__name__)

USAGE = """usage: lastyear COMMAND [--user NAME] [--year YYYY] [-ll LEVEL] [-t]

commands:
  import          fetch a year of scrobbles from Last.fm and store them
  release-years   look up release years on MusicBrainz for a user's year
  album-urls      store Last.fm urls for albums that have an MBID
"""


def _option(argv: list[str], flag: str, default: str | None = None) -> str | None:
    if flag not in argv:
        return default

    idx = argv.index(flag) + 1
    if idx >= len(argv):
        raise ValueError(f"Expected a value after {flag}.")
    return argv[idx]


async def import_year(settings: Settings, username: str, year: int) -> int:
    from db import get_db_manager, get_session
    from ingest.pipeline import run_import
    from ingest.source import LastFMSource
    from ingest.store import RecordStore

    if not settings.lastfm_api_key:
        raise ValueError("LAST_FM_APPLICATION_API_KEY environment variable not set")

    await get_db_manager().setup_tables()

    source = LastFMSource(settings.lastfm_api_key)
    try:
        async with get_session() as s:
            summary = await run_import(username, year, source, RecordStore(s),
                                       limit=settings.fetch_limit)
    finally:
        await source.close()

    print(summary.message)
    return summary.scrobbles_written


async def release_years(settings: Settings, username: str, year: int) -> None:
    from db import get_session
    from ingest.enrich import find_release_years, setup_musicbrainz
    from ingest.pipeline import check_year

    check_year(year)
    setup_musicbrainz(settings.musicbrainz_contact)

    async with get_session() as s:
        summary = await find_release_years(s, username, year)

    print(f"Processed {summary.processed} tracks for {username} in {year}: "
          f"{summary.mbid_found} via MBID, {summary.fuzzy_found} via fuzzy, "
          f"{summary.not_found} not found")


async def album_urls() -> None:
    from db import get_session
    from ingest.enrich import find_album_urls

    async with get_session() as s:
        updated = await find_album_urls(s)
    print(f"Stored {updated} album urls.")


async def main(argv: list[str]) -> int:
    from db import get_db_manager

    settings = Settings.from_env()
    commands = [a for a in argv if a in ("import", "release-years", "album-urls")]
    if len(commands) != 1:
        print(USAGE)
        return 1

    try:
        username = _option(argv, "--user", settings.lastfm_username)
        year = int(_option(argv, "--year", str(datetime.now(timezone.utc).year)))

        match commands[0]:
            case "import": await import_year(settings, username, year)
            case "release-years": await release_years(settings, username, year)
            case "album-urls": await album_urls()
    except ValueError as e:
        LOGGER.error(str(e))
        print(f"error: {e}")
        return 1
    except Exception:
        LOGGER.error(f"Main loop error: {traceback.format_exc()}")
        return 1
    finally:
        await get_db_manager().cleanup()

    return 0


def console_level(argv: list[str], settings: Settings) -> int:
    return parse_level(_option(argv, "-ll", settings.log_level))


def run():
    argv = sys.argv[1:]
    setup_logging(console_level=console_level(argv, Settings.from_env()))

    if os.getenv("TEST_MODE"):
        LOGGER.info("Test mode initiated, using test DB.")

    sys.exit(asyncio.run(main(argv)))


if __name__ == "__main__":
    run()
