# wrapped/services/insights_service.py
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from wrapped.services.spotify_client import SpotifyClient

TIME_RANGES = ["short_term", "medium_term", "long_term"]


# --------- Helpers ---------
def _round(value: float) -> int:
    # Half-up rounding, so 62.5 → 63
    return int(math.floor(value + 0.5))


def _release_year(track: Dict) -> Optional[int]:
    release_date = (track.get("album") or {}).get("release_date") or ""
    try:
        return int(release_date[:4])
    except ValueError:
        return None


def _percent(count: int, total: int) -> int:
    return _round(count / total * 100) if total else 0


# --------- Formatting ---------
def format_tracks(data: Dict, time_range: str, limit: int = 50) -> List[Dict]:
    rows = []
    for idx, track in enumerate((data.get("items") or [])[:limit], start=1):
        album = track.get("album") or {}
        artists = track.get("artists") or []

        rows.append({
            "id": track.get("id"),
            "name": track.get("name"),
            "artist": artists[0]["name"] if artists else None,
            "artists": artists,
            "album": {
                "name": album.get("name"),
                "release_date": album.get("release_date"),
                "images": album.get("images", []),
            },
            "popularity": track.get("popularity"),
            "external_urls": {"spotify": (track.get("external_urls") or {}).get("spotify")},
            "images": album.get("images", []),
            "rank": idx,
            "timeRange": time_range,
        })
    return rows


def format_artists(data: Dict, time_range: str, limit: int = 50) -> List[Dict]:
    rows = []
    for idx, artist in enumerate((data.get("items") or [])[:limit], start=1):
        rows.append({
            "id": artist.get("id"),
            "name": artist.get("name"),
            "genres": artist.get("genres", []),
            "popularity": artist.get("popularity"),
            "images": artist.get("images", []),
            "external_urls": {"spotify": (artist.get("external_urls") or {}).get("spotify")},
            "followers": artist.get("followers"),
            "rank": idx,
            "timeRange": time_range,
        })
    return rows


# --------- Metrics ---------
def discovery_metrics(tracks: List[Dict]) -> Dict:
    """
    Aggregate taste metrics over formatted top tracks:

    - mainstreamTaste: average popularity (0-100)
    - vintageCollector: % of tracks released before 2010
    - undergroundTaste: % of tracks with popularity < 40
    - recentMusicLover: % of tracks released in 2020 or later
    """
    total = len(tracks)
    popularity = [t.get("popularity") or 0 for t in tracks]
    years = [y for y in (_release_year(t) for t in tracks) if y is not None]

    unique_artists = len({t.get("artist") for t in tracks})
    unique_albums = len({(t.get("album") or {}).get("name") for t in tracks})

    return {
        "mainstreamTaste": _round(sum(popularity) / total) if total else 0,
        "artistDiversity": unique_artists,
        "vintageCollector": _percent(sum(1 for y in years if y < 2010), total),
        "undergroundTaste": _percent(sum(1 for p in popularity if p < 40), total),
        "recentMusicLover": _percent(sum(1 for y in years if y >= 2020), total),
        "uniqueArtistsCount": unique_artists,
        "uniqueAlbumsCount": unique_albums,
        "oldestTrackYear": min(years) if years else None,
        "newestTrackYear": max(years) if years else None,
    }


def social_metrics(profile: Dict) -> Dict:
    return {
        "followedArtistsCount": (profile.get("followers") or {}).get("total") or 0,
        # Not exposed by the profile endpoint
        "playlistsOwned": 0,
        "accountType": profile.get("product") or "",
    }


# --------- Top Items ---------
def top_items_for_range(client: SpotifyClient, time_range: str, limit: int = 50) -> Dict:
    with ThreadPoolExecutor(max_workers=3) as pool:
        profile_f = pool.submit(client.me)
        tracks_f = pool.submit(client.top_tracks, time_range, limit)
        artists_f = pool.submit(client.top_artists, time_range, limit)
        profile, tracks, artists = profile_f.result(), tracks_f.result(), artists_f.result()

    return {
        "userProfile": profile,
        "topTracks": format_tracks(tracks, time_range, limit)[:10],
        "topArtists": format_artists(artists, time_range, limit)[:10],
    }


def top_items_all_ranges(client: SpotifyClient) -> Dict:
    """
    Profile, recently played and top tracks/artists for every time range,
    plus the derived discovery and social metrics.
    """
    with ThreadPoolExecutor(max_workers=8) as pool:
        profile_f = pool.submit(client.me)
        recent_f = pool.submit(client.recently_played, 50)
        tracks_f = {r: pool.submit(client.top_tracks, r, 50) for r in TIME_RANGES}
        artists_f = {r: pool.submit(client.top_artists, r, 50) for r in TIME_RANGES}

        profile = profile_f.result()
        recent = recent_f.result()
        raw_tracks = {r: f.result() for r, f in tracks_f.items()}
        raw_artists = {r: f.result() for r, f in artists_f.items()}

    has_data = any(
        (raw_tracks[r].get("items") or raw_artists[r].get("items")) for r in TIME_RANGES
    )
    if not has_data:
        return {"error": "insufficient_data"}

    tracks_by_range = {r: format_tracks(raw_tracks[r], r) for r in TIME_RANGES}
    artists_by_range = {r: format_artists(raw_artists[r], r) for r in TIME_RANGES}
    all_tracks = [t for r in TIME_RANGES for t in tracks_by_range[r]]

    recent_tracks = [
        {
            "track": item.get("track"),
            "played_at": item.get("played_at"),
            "context": item.get("context"),
        }
        for item in (recent.get("items") or [])[:20]
    ]

    return {
        "topTracksByTimeRange": tracks_by_range,
        "topArtistsByTimeRange": artists_by_range,
        # Legacy shape: short_term top 10
        "topTracks": tracks_by_range["short_term"][:10],
        "topArtists": artists_by_range["short_term"][:10],
        "userProfile": profile,
        "recentTracks": recent_tracks,
        "discoveryMetrics": discovery_metrics(all_tracks),
        "socialMetrics": social_metrics(profile),
    }
