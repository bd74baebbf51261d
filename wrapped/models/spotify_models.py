from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


# /api/spotify/search-playlists
class PlaylistResult(BaseModel):
    id: Optional[str] = None
    name: str
    description: str
    url: str
    image: Optional[str] = None
    curator: str
    tracks: int = Field(0, description="Total tracks in the playlist")
    external_urls: Optional[Dict[str, Any]] = None
    tracks_list: Optional[List[str]] = Field(None, description='"Artist - Title" strings, only with include_tracks')


class PlaylistSearchResponse(BaseModel):
    success: bool
    playlists: List[PlaylistResult]
    query: str
    total: int


# /api/spotify/search-track
class TrackAlbum(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None


class TrackResult(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    artists: List[str] = []
    url: Optional[str] = None
    preview_url: Optional[str] = None
    album: TrackAlbum


class TrackSearchResponse(BaseModel):
    ok: bool
    cached: bool = Field(..., description="Served from the response cache")
    result: Optional[TrackResult] = None
