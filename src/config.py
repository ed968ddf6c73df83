import os
import logging
from dataclasses import dataclass

from sqlalchemy import URL

from dotenv import load_dotenv
load_dotenv()

LOGGER = logging.getLogger(__name__)

DEFAULT_USERNAME = "jellebouwman"
FIRST_SCROBBLE_YEAR = 2002  # Last.fm launched in 2002, nothing older exists.
MAX_FETCH_LIMIT = 200


def _str_to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        LOGGER.warning(f"Expected an integer, got '{val}'. Using {default}.")
        return default


def database_url() -> str | URL:
    if url := os.environ.get("DATABASE_URL"):
        return url

    if test_db := os.environ.get("TEST_DATABASE_NAME"):
        database_name = test_db
    elif os.getenv("TEST_MODE"):
        database_name = "test_db"
    else:
        database_name = os.environ.get("POSTGRES_DB", "db")

    return URL.create(
        drivername='postgresql+asyncpg',
        username=os.environ["POSTGRES_USER"],
        password=os.environ.get("POSTGRES_PASSWORD"),
        host=os.environ["POSTGRES_HOST"],
        port=int(os.environ.get("DB_PORT", 5432)),
        database=database_name
    )


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from the environment (and .env)."""

    lastfm_api_key: str | None
    lastfm_api_secret: str | None = None
    lastfm_username: str = DEFAULT_USERNAME
    musicbrainz_contact: str = "lastyear@localhost"
    fetch_limit: int = MAX_FETCH_LIMIT
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            lastfm_api_key=os.getenv("LAST_FM_APPLICATION_API_KEY") or os.getenv("LASTFM_API_KEY"),
            lastfm_api_secret=os.getenv("LASTFM_API_SECRET"),
            lastfm_username=os.getenv("LASTFM_USERNAME", DEFAULT_USERNAME),
            musicbrainz_contact=os.getenv("EMAIL_ADDR", "lastyear@localhost"),
            fetch_limit=min(_str_to_int(os.getenv("FETCH_LIMIT"), MAX_FETCH_LIMIT), MAX_FETCH_LIMIT),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
