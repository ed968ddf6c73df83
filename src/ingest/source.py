"""Last.fm track history source."""
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from ingest.errors import SourceUnavailable
from ingest.events import LastFMErrorResponse, PlayEvent, parse_recent_tracks

LOGGER = logging.getLogger(__name__)

LASTFM_API_URL = "https://ws.audioscrobbler.com/2.0/"

LASTFM_ERRORS = {
    6: "user '{user}' not found or invalid parameters",
    10: "invalid Last.fm API key",
    17: "user '{user}' has a private profile",
    29: "rate limit exceeded, try again later",
}


@dataclass(frozen=True)
class Window:
    from_: int  # UNIX timestamp, inclusive
    to: int     # UNIX timestamp


class LastFMSource:
    """Fetches one page of `user.getRecentTracks`, there is no pagination."""

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self.api_key = api_key
        self._client = client
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=LASTFM_API_URL, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, params: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        request_params = {"api_key": self.api_key, "format": "json", **params}

        LOGGER.debug(f"Requesting {params.get('method')} for {params.get('user')}")
        try:
            response = await client.get("", params=request_params)
            body = response.json()
        except httpx.HTTPError as e:
            raise SourceUnavailable("Last.fm", f"request failed: {e}") from e
        except ValueError as e:
            raise SourceUnavailable("Last.fm", f"response is not JSON (HTTP {response.status_code})") from e

        if isinstance(body, dict) and "error" in body:
            error = LastFMErrorResponse.model_validate(body)
            template = LASTFM_ERRORS.get(error.error, "Last.fm API error {code}: {message}")
            raise SourceUnavailable("Last.fm", template.format(user=params.get("user"),
                                                               code=error.error,
                                                               message=error.message))

        if response.is_error:
            raise SourceUnavailable("Last.fm", f"HTTP {response.status_code}")

        return body

    async def fetch_events(self, window: Window, limit: int, user: str) -> list[PlayEvent] | None:
        """Plays of `user` inside `window`, None whenever Last.fm cannot give us a usable answer."""
        params = {
            "method": "user.getRecentTracks",
            "user": user,
            "limit": limit,
            "from": window.from_,
            "to": window.to,
        }

        try:
            body = await self._request(params)
            events = parse_recent_tracks(body)
        except SourceUnavailable as e:
            LOGGER.error(f"Error fetching recent tracks: {e}")
            return None
        except ValidationError as e:
            LOGGER.error(f"Error fetching recent tracks, unexpected payload: {e}")
            return None

        LOGGER.info(f"Fetched {len(events)} tracks from Last.fm for '{user}'.")
        return events
