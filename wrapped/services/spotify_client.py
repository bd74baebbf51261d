# wrapped/services/spotify_client.py
import logging
from typing import Dict, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from wrapped.config.settings import SPOTIFY_API_BASE, UPSTREAM_TIMEOUT_SECONDS
from wrapped.services.errors import (
    AuthExpiredError,
    UpstreamError,
    UpstreamRateLimitedError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

PLAYLIST_TRACK_FIELDS = "items(track(name,artists(name)))"

_http_session = None


def get_http_session() -> requests.Session:
    """
    Lazy-load one pooled requests.Session for all Spotify calls.
    Pool size covers the playlist-track fan-out.
    """
    global _http_session

    if _http_session is None:
        _http_session = requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=20)
        _http_session.mount("https://", adapter)

    return _http_session


class SpotifyClient:
    """Thin Spotify Web API wrapper bound to one bearer token."""

    def __init__(
        self,
        access_token: str,
        http: Optional[requests.Session] = None,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
        base_url: str = SPOTIFY_API_BASE,
    ):
        self.access_token = access_token
        self.http = http if http is not None else get_http_session()
        self.timeout = timeout
        self.base_url = base_url

    # --------- Spotify API Wrapper ---------
    def get(self, path: str, params: Optional[Dict] = None) -> Dict:
        url = f"{self.base_url}/{path}"
        headers = {"Authorization": f"Bearer {self.access_token}"}

        try:
            r = self.http.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            logger.warning(f"Spotify GET {path} timed out after {self.timeout}s")
            raise UpstreamUnavailableError(504, "Spotify did not answer in time") from e
        except requests.RequestException as e:
            logger.warning(f"Spotify GET {path} failed: {e.__class__.__name__}: {e}")
            raise UpstreamUnavailableError(503, "Spotify is unreachable") from e

        if r.status_code == 401:
            raise AuthExpiredError()

        if r.status_code == 429:
            retry_after = r.headers.get("Retry-After")
            logger.warning(f"Spotify rate limited GET {path}, retry after {retry_after}")
            raise UpstreamRateLimitedError(
                r.text,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if r.status_code >= 500:
            logger.error(f"Spotify GET {path} → {r.status_code}: {r.text}")
            raise UpstreamUnavailableError(r.status_code, r.text)

        if not r.ok:
            logger.error(f"Spotify GET {path} → {r.status_code}: {r.text}")
            raise UpstreamError(r.status_code, r.text)

        # 204 → No Content
        if r.status_code == 204 or not r.text:
            return {}

        try:
            return r.json()
        except ValueError as e:
            raise UpstreamUnavailableError(502, "Spotify returned a non-JSON body") from e

    # --------- Search ---------
    def search(self, query: str, types: str = "artist,track", limit: int = 20) -> Dict:
        return self.get("search", params={"q": query, "type": types, "limit": limit})

    def search_playlists(self, query: str, limit: int) -> Dict:
        return self.search(query, types="playlist", limit=limit)

    def search_tracks(self, query: str, limit: int = 1) -> Dict:
        return self.search(query, types="track", limit=limit)

    def playlist_tracks(self, playlist_id: str, limit: int = 100) -> Dict:
        return self.get(
            f"playlists/{quote(playlist_id, safe='')}/tracks",
            params={"fields": PLAYLIST_TRACK_FIELDS, "limit": limit},
        )

    # --------- Profile / Top Items ---------
    def me(self) -> Dict:
        return self.get("me")

    def top_tracks(self, time_range: str, limit: int = 50) -> Dict:
        return self.get("me/top/tracks", params={"limit": limit, "time_range": time_range})

    def top_artists(self, time_range: str, limit: int = 50) -> Dict:
        return self.get("me/top/artists", params={"limit": limit, "time_range": time_range})

    def recently_played(self, limit: int = 50) -> Dict:
        return self.get("me/player/recently-played", params={"limit": limit})
