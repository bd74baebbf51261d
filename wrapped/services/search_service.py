# wrapped/services/search_service.py
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from wrapped.services.errors import AuthExpiredError, UpstreamError
from wrapped.services.response_cache import (
    ResponseCache,
    playlist_search_key,
    playlist_tracks_key,
    track_search_key,
)
from wrapped.services.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)

MAX_PLAYLIST_LIMIT = 50
# Upper bound on playlists whose tracks are fetched in one request
MAX_TRACK_FANOUT = 10


# --------- Helpers ---------
def _as_dict(value: Any) -> Dict:
    return value if isinstance(value, dict) else {}


def _first_image_url(images: Any) -> Optional[str]:
    if isinstance(images, list) and images:
        url = _as_dict(images[0]).get("url")
        if isinstance(url, str):
            return url
    return None


def clamp_limit(raw: Optional[int], default: int = 10) -> int:
    if raw is None:
        return default
    return max(1, min(raw, MAX_PLAYLIST_LIMIT))


# --------- Playlists ---------
def shape_playlist(item: Any, query: str) -> Dict:
    p = _as_dict(item)
    external_urls = p.get("external_urls") if isinstance(p.get("external_urls"), dict) else None
    owner = _as_dict(p.get("owner"))
    tracks = _as_dict(p.get("tracks"))

    description = p.get("description")
    url = (external_urls or {}).get("spotify")
    curator = owner.get("display_name")
    total = tracks.get("total")

    return {
        "id": p.get("id") if isinstance(p.get("id"), str) else None,
        "name": p.get("name") if isinstance(p.get("name"), str) else "",
        "description": description if isinstance(description, str) else f"Curated {query} playlist",
        "url": url if isinstance(url, str) else "",
        "image": _first_image_url(p.get("images")),
        "curator": curator if isinstance(curator, str) else "Spotify",
        "tracks": total if isinstance(total, int) else 0,
        "external_urls": external_urls,
    }


def format_track_lines(tracks_data: Any) -> List[str]:
    """Turn a playlist track listing into "Artist A, Artist B - Title" strings."""
    items = _as_dict(tracks_data).get("items")
    if not isinstance(items, list):
        return []

    lines = []
    for item in items:
        track = _as_dict(item).get("track")
        if not isinstance(track, dict):
            continue

        artists = track.get("artists") if isinstance(track.get("artists"), list) else []
        artist_names = ", ".join(
            a["name"] if isinstance(_as_dict(a).get("name"), str) else "" for a in artists
        )
        name = track.get("name") if isinstance(track.get("name"), str) else ""

        line = f"{artist_names} - {name}".strip()
        if line:
            lines.append(line)

    return lines


def _fetch_tracks_list(client: SpotifyClient, cache: ResponseCache, playlist: Dict) -> None:
    playlist_id = playlist.get("id")
    if not playlist_id:
        return

    try:
        tracks_data = cache.get_or_fetch(
            playlist_tracks_key(playlist_id),
            lambda: client.playlist_tracks(playlist_id),
        )
    except (UpstreamError, AuthExpiredError) as e:
        # One playlist failing only means it goes out without tracks_list
        logger.warning(f"Failed to fetch tracks for playlist {playlist_id}: {e}")
        return

    playlist["tracks_list"] = format_track_lines(tracks_data)


def attach_track_lists(client: SpotifyClient, cache: ResponseCache, playlists: List[Dict]) -> None:
    to_fetch = playlists[:MAX_TRACK_FANOUT]
    if not to_fetch:
        return

    with ThreadPoolExecutor(max_workers=len(to_fetch)) as pool:
        futures = [pool.submit(_fetch_tracks_list, client, cache, pl) for pl in to_fetch]
        for f in futures:
            f.result()


def search_playlists(
    client: SpotifyClient,
    cache: ResponseCache,
    query: str,
    limit: int,
    include_tracks: bool = False,
) -> Dict:
    data = cache.get_or_fetch(
        playlist_search_key(query, limit, include_tracks),
        lambda: client.search_playlists(query, limit),
    )

    playlists_obj = _as_dict(_as_dict(data).get("playlists"))
    items = playlists_obj.get("items") if isinstance(playlists_obj.get("items"), list) else []

    # Spotify search can return null slots for removed playlists
    playlists = [shape_playlist(item, query) for item in items if item]

    if include_tracks and playlists:
        attach_track_lists(client, cache, playlists)

    return {
        "success": True,
        "playlists": playlists,
        "query": query,
        "total": playlists_obj.get("total") or 0,
    }


# --------- Tracks ---------
def shape_track(data: Any) -> Optional[Dict]:
    """First hit of a track search, or None."""
    items = _as_dict(_as_dict(data).get("tracks")).get("items")
    if not isinstance(items, list) or not items:
        return None

    item = _as_dict(items[0])
    if not item:
        return None

    artists = [
        a["name"] for a in item.get("artists") or []
        if isinstance(_as_dict(a).get("name"), str) and a["name"]
    ]
    album = _as_dict(item.get("album"))
    url = _as_dict(item.get("external_urls")).get("spotify")

    return {
        "id": item.get("id") if isinstance(item.get("id"), str) else None,
        "name": item.get("name") if isinstance(item.get("name"), str) else None,
        "artists": artists,
        "url": url if isinstance(url, str) else None,
        "preview_url": item.get("preview_url") if isinstance(item.get("preview_url"), str) else None,
        "album": {
            "name": album.get("name") if isinstance(album.get("name"), str) else None,
            "image": _first_image_url(album.get("images")),
        },
    }


def search_track(client: SpotifyClient, cache: ResponseCache, query: str) -> Tuple[Optional[Dict], bool]:
    """Returns (result, cached)."""
    return cache.get_or_fetch_with_hit(
        track_search_key(query),
        lambda: shape_track(client.search_tracks(query, limit=1)),
    )
