"""Test configuration and fixtures"""

import os

import pytest
from unittest.mock import Mock

# Keep the app away from Firestore / Redis while tests import it
os.environ.setdefault("TOKEN_STORE", "memory")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret-for-the-wrapped-backend-suite")

from wrapped.models.session_models import Session
from wrapped.services.response_cache import ResponseCache
from wrapped.services.token_session_manager import TokenSessionManager
from wrapped.services.token_store import MemoryTokenStore

from helpers import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(ttl_seconds=300, clock=clock)


@pytest.fixture
def store():
    return MemoryTokenStore()


@pytest.fixture
def http():
    """Mock requests.Session; tests set http.post / http.get return values"""
    return Mock()


@pytest.fixture
def manager(store, http, clock):
    return TokenSessionManager(
        store=store,
        http=http,
        client_id="client-id",
        client_secret="client-secret",
        token_url="https://accounts.example/api/token",
        timeout=5,
        clock=clock,
    )


@pytest.fixture
def fresh_session(clock):
    return Session(access_token="AT1", refresh_token="RT1", expires_at=int(clock()) + 3600)


@pytest.fixture
def expired_session(clock):
    return Session(access_token="AT1", refresh_token="RT1", expires_at=int(clock()) - 1)


@pytest.fixture
def sample_playlist_search():
    """Spotify search?type=playlist payload"""
    return {
        "playlists": {
            "total": 2,
            "items": [
                {
                    "id": "pl1",
                    "name": "Chill Vibes",
                    "description": "Relax",
                    "external_urls": {"spotify": "https://open.spotify.com/playlist/pl1"},
                    "images": [{"url": "https://img/pl1.jpg"}],
                    "owner": {"display_name": "DJ Calm"},
                    "tracks": {"total": 42},
                },
                {
                    "id": "pl2",
                    "name": "Untitled",
                    "description": None,
                    "external_urls": {},
                    "images": [],
                    "owner": {},
                    "tracks": {},
                },
                None,
            ],
        }
    }


@pytest.fixture
def sample_playlist_tracks():
    return {
        "items": [
            {"track": {"name": "Levitating", "artists": [{"name": "Dua Lipa"}, {"name": "DaBaby"}]}},
            {"track": {"name": "Blinding Lights", "artists": [{"name": "The Weeknd"}]}},
            {"track": None},
        ]
    }


@pytest.fixture
def sample_track_search():
    return {
        "tracks": {
            "items": [
                {
                    "id": "t1",
                    "name": "Levitating",
                    "artists": [{"name": "Dua Lipa"}],
                    "external_urls": {"spotify": "https://open.spotify.com/track/t1"},
                    "preview_url": None,
                    "album": {"name": "Future Nostalgia", "images": [{"url": "https://img/fn.jpg"}]},
                }
            ]
        }
    }
