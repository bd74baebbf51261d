# wrapped/api/spotify_api.py
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from wrapped.api.dependencies import get_response_cache, get_spotify_client
from wrapped.models.spotify_models import PlaylistSearchResponse, TrackSearchResponse
from wrapped.services.errors import AuthExpiredError, UpstreamError
from wrapped.services.insights_service import TIME_RANGES, top_items_all_ranges, top_items_for_range
from wrapped.services.response_cache import ResponseCache
from wrapped.services.search_service import clamp_limit, search_playlists, search_track
from wrapped.services.spotify_client import SpotifyClient

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get(
    "/search-playlists",
    summary="Search playlists (cached 5 minutes)",
    response_model=PlaylistSearchResponse,
    response_model_exclude_none=True,
)
def search_playlists_route(
    q: str = Query("", description="Search query"),
    limit: Optional[int] = Query(10, description="Max playlists, clamped to 1-50"),
    include_tracks: bool = Query(False, description="Attach the first 100 tracks of up to 10 playlists"),
    client: SpotifyClient = Depends(get_spotify_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    try:
        return search_playlists(client, cache, q, clamp_limit(limit), include_tracks)
    except (UpstreamError, AuthExpiredError):
        raise
    except Exception as e:
        logger.error(f"Playlist search error for {q!r}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/search-track",
    summary="Find the best matching track (cached 5 minutes)",
    response_model=TrackSearchResponse,
)
def search_track_route(
    q: Optional[str] = Query(None, description="Search query, e.g. 'Dua Lipa Levitating'"),
    client: SpotifyClient = Depends(get_spotify_client),
    cache: ResponseCache = Depends(get_response_cache),
):
    if not q:
        raise HTTPException(status_code=400, detail="missing q")

    try:
        result, cached = search_track(client, cache, q)
    except (UpstreamError, AuthExpiredError):
        raise
    except Exception as e:
        logger.error(f"search-track error for {q!r}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"ok": True, "cached": cached, "result": result}


@router.get("/search", summary="General Spotify search (not cached)")
def search_route(
    q: Optional[str] = Query(None, description="Search query"),
    type: str = Query("artist,track", description="Comma separated Spotify item types"),
    limit: int = Query(20, ge=1, le=50),
    client: SpotifyClient = Depends(get_spotify_client),
):
    if not q:
        raise HTTPException(status_code=400, detail="Query parameter is required")

    data = client.search(q, types=type, limit=limit)
    logger.info(
        f"Spotify search {q!r} ({type}): "
        f"{len((data.get('artists') or {}).get('items') or [])} artists, "
        f"{len((data.get('tracks') or {}).get('items') or [])} tracks"
    )
    return data


@router.get("/top-items", summary="Top tracks/artists with discovery metrics")
def top_items_route(
    time_range: Optional[str] = Query(None, description="short_term | medium_term | long_term"),
    limit: int = Query(50, ge=1, le=50),
    client: SpotifyClient = Depends(get_spotify_client),
):
    if time_range is not None and time_range not in TIME_RANGES:
        raise HTTPException(status_code=400, detail=f"time_range must be one of {', '.join(TIME_RANGES)}")

    if time_range:
        return top_items_for_range(client, time_range, limit)

    logger.info("Loading top items for all time ranges")
    return top_items_all_ranges(client)
