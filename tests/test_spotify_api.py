# tests/test_spotify_api.py
"""HTTP routes: auth short-circuit, caching behaviour and error mapping"""

import threading
import time
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient
from unittest.mock import Mock

from wrapped.main import app
from wrapped.models.session_models import Session, SessionError
from wrapped.services.user_auth import create_jwt_token, create_oauth_state
from helpers import make_response


@pytest.fixture
def spotify_http(monkeypatch):
    """Mock requests.Session used by SpotifyClient"""
    http = Mock()
    monkeypatch.setattr("wrapped.services.spotify_client._http_session", http)
    return http


@pytest.fixture
def client(monkeypatch, cache, store, manager, spotify_http):
    monkeypatch.setattr(app.state, "response_cache", cache)
    monkeypatch.setattr(app.state, "token_store", store)
    monkeypatch.setattr(app.state, "session_manager", manager)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_jwt_token('user-1')}"}


@pytest.fixture
def signed_in(store, fresh_session):
    store.save("user-1", fresh_session)
    return fresh_session


class TestAuthRequired:
    def test_missing_jwt(self, client):
        r = client.get("/api/spotify/search-playlists", params={"q": "chill"})
        assert r.status_code == 401

    def test_no_spotify_session(self, client, auth_headers, spotify_http):
        r = client.get("/api/spotify/search-track", params={"q": "levitating"}, headers=auth_headers)
        assert r.status_code == 401
        assert r.json()["error"] == "token_expired"
        assert spotify_http.get.call_count == 0

    def test_errored_session_never_calls_spotify(self, client, auth_headers, store, http, spotify_http, clock):
        store.save("user-1", Session(
            access_token="AT1",
            refresh_token="RT1",
            expires_at=int(clock()) - 10,
            error=SessionError.REFRESH_ACCESS_TOKEN_ERROR,
        ))

        r = client.get("/api/spotify/search-playlists", params={"q": "chill"}, headers=auth_headers)

        assert r.status_code == 401
        assert http.post.call_count == 0
        assert spotify_http.get.call_count == 0

    def test_failed_refresh_then_short_circuit(self, client, auth_headers, store, http, spotify_http, expired_session):
        store.save("user-1", expired_session)
        http.post.return_value = make_response(400, {"error": "invalid_grant"})

        first = client.get("/api/spotify/search-track", params={"q": "x"}, headers=auth_headers)
        second = client.get("/api/spotify/search-track", params={"q": "x"}, headers=auth_headers)

        assert first.status_code == second.status_code == 401
        assert http.post.call_count == 1
        assert spotify_http.get.call_count == 0

    def test_expired_session_is_refreshed_before_search(
        self, client, auth_headers, store, http, spotify_http, expired_session, sample_track_search
    ):
        store.save("user-1", expired_session)
        http.post.return_value = make_response(200, {"access_token": "AT2", "expires_in": 3600})
        spotify_http.get.return_value = make_response(200, sample_track_search)

        r = client.get("/api/spotify/search-track", params={"q": "levitating"}, headers=auth_headers)

        assert r.status_code == 200
        headers = spotify_http.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer AT2"
        assert store.get("user-1").access_token == "AT2"


class TestSearchPlaylists:
    def test_blank_query(self, client, auth_headers, signed_in):
        r = client.get("/api/spotify/search-playlists", params={"q": "  "}, headers=auth_headers)
        assert r.status_code == 400

    def test_results_are_cached(self, client, auth_headers, signed_in, spotify_http, sample_playlist_search):
        spotify_http.get.return_value = make_response(200, sample_playlist_search)

        for _ in range(3):
            r = client.get(
                "/api/spotify/search-playlists",
                params={"q": "chill", "limit": 200},
                headers=auth_headers,
            )
            assert r.status_code == 200

        body = r.json()
        assert body["success"] is True
        assert body["total"] == 2
        assert body["playlists"][0]["name"] == "Chill Vibes"
        assert spotify_http.get.call_count == 1
        assert spotify_http.get.call_args.kwargs["params"] == {"q": "chill", "type": "playlist", "limit": 50}

    def test_include_tracks(self, client, auth_headers, signed_in, spotify_http, sample_playlist_search, sample_playlist_tracks):
        def fake_get(url, **kwargs):
            if url.endswith("/search"):
                return make_response(200, sample_playlist_search)
            return make_response(200, sample_playlist_tracks)

        spotify_http.get.side_effect = fake_get

        r = client.get(
            "/api/spotify/search-playlists",
            params={"q": "chill", "include_tracks": "true"},
            headers=auth_headers,
        )

        assert r.status_code == 200
        assert r.json()["playlists"][0]["tracks_list"][0] == "Dua Lipa, DaBaby - Levitating"

    def test_rate_limited(self, client, auth_headers, signed_in, spotify_http, cache):
        spotify_http.get.return_value = make_response(429, text="slow down", headers={"Retry-After": "7"})

        r = client.get("/api/spotify/search-playlists", params={"q": "chill"}, headers=auth_headers)

        assert r.status_code == 429
        assert r.headers["Retry-After"] == "7"
        assert r.json()["retryable"] is True
        assert cache.size() == 0

    def test_upstream_unavailable(self, client, auth_headers, signed_in, spotify_http):
        spotify_http.get.return_value = make_response(503, text="oops")

        r = client.get("/api/spotify/search-playlists", params={"q": "chill"}, headers=auth_headers)

        assert r.status_code == 503
        assert r.json()["retryable"] is True


class TestSearchTrack:
    def test_missing_query(self, client, auth_headers, signed_in):
        r = client.get("/api/spotify/search-track", headers=auth_headers)
        assert r.status_code == 400

    def test_cached_flag(self, client, auth_headers, signed_in, spotify_http, sample_track_search):
        spotify_http.get.return_value = make_response(200, sample_track_search)

        first = client.get("/api/spotify/search-track", params={"q": "levitating"}, headers=auth_headers).json()
        second = client.get("/api/spotify/search-track", params={"q": "levitating"}, headers=auth_headers).json()

        assert first == {**second, "cached": False}
        assert second["cached"] is True
        assert second["result"]["album"]["name"] == "Future Nostalgia"
        assert spotify_http.get.call_count == 1


class TestSharedCacheAcrossUsers:
    def test_revoked_user_does_not_sign_out_a_concurrent_user(
        self, client, store, clock, spotify_http, sample_track_search
    ):
        expires_at = int(clock()) + 3600
        store.save("user-a", Session(access_token="AT-A", refresh_token="RT-A", expires_at=expires_at))
        store.save("user-b", Session(access_token="AT-B", refresh_token="RT-B", expires_at=expires_at))
        a_started, release = threading.Event(), threading.Event()

        def fake_get(url, **kwargs):
            if kwargs["headers"]["Authorization"] == "Bearer AT-A":
                a_started.set()
                release.wait(2)
                return make_response(401, {"error": {"status": 401}})
            return make_response(200, sample_track_search)

        spotify_http.get.side_effect = fake_get
        responses = {}

        def search(user_id):
            headers = {"Authorization": f"Bearer {create_jwt_token(user_id)}"}
            responses[user_id] = client.get("/api/spotify/search-track", params={"q": "levitating"}, headers=headers)

        user_a = threading.Thread(target=search, args=("user-a",))
        user_a.start()
        assert a_started.wait(2)
        user_b = threading.Thread(target=search, args=("user-b",))
        user_b.start()
        time.sleep(0.05)
        release.set()
        user_a.join(5)
        user_b.join(5)

        assert responses["user-a"].status_code == 401
        assert responses["user-b"].status_code == 200
        assert responses["user-b"].json()["result"]["name"] == "Levitating"


class TestOtherRoutes:
    def test_general_search(self, client, auth_headers, signed_in, spotify_http):
        spotify_http.get.return_value = make_response(200, {"artists": {"items": [{"name": "A"}]}})

        r = client.get("/api/spotify/search", params={"q": "a", "type": "artist"}, headers=auth_headers)

        assert r.status_code == 200
        assert r.json()["artists"]["items"][0]["name"] == "A"

    def test_top_items_rejects_unknown_range(self, client, auth_headers, signed_in):
        r = client.get("/api/spotify/top-items", params={"time_range": "forever"}, headers=auth_headers)
        assert r.status_code == 400

    def test_spotify_401_means_sign_in_again(self, client, auth_headers, signed_in, spotify_http):
        spotify_http.get.return_value = make_response(401, {"error": {"status": 401}})
        r = client.get("/api/spotify/top-items", params={"time_range": "short_term"}, headers=auth_headers)
        assert r.status_code == 401
        assert r.json()["error"] == "token_expired"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"


class TestAuthRoutes:
    def test_login_redirects_to_spotify(self, client):
        r = client.get("/auth/login", follow_redirects=False)

        assert r.status_code in (302, 307)
        location = urlparse(r.headers["location"])
        assert location.netloc == "accounts.spotify.com"
        query = parse_qs(location.query)
        assert query["response_type"] == ["code"]
        assert "user-top-read" in query["scope"][0]
        assert "user-library-read" in query["scope"][0]

    def test_callback_rejects_bad_state(self, client):
        r = client.get("/auth/callback", params={"code": "c", "state": "forged"})
        assert r.status_code == 400

    def test_callback_signs_in(self, client, http, spotify_http, store):
        http.post.return_value = make_response(
            200, {"access_token": "AT", "refresh_token": "RT", "expires_in": 3600}
        )
        spotify_http.get.return_value = make_response(200, {"id": "spotify-user"})

        r = client.get("/auth/callback", params={"code": "c", "state": create_oauth_state()})

        assert r.status_code == 200
        body = r.json()
        assert body["user_id"] == "spotify-user"
        assert store.get("spotify-user").refresh_token == "RT"

        status = client.get("/auth/session", headers={"Authorization": f"Bearer {body['token']}"})
        assert status.json()["authenticated"] is True

    def test_callback_exchange_failure(self, client, http):
        http.post.return_value = make_response(400, {"error": "invalid_grant"})
        r = client.get("/auth/callback", params={"code": "c", "state": create_oauth_state()})
        assert r.status_code == 400

    def test_logout_deletes_session(self, client, auth_headers, signed_in, store):
        r = client.post("/auth/logout", headers=auth_headers)

        assert r.status_code == 200
        assert store.get("user-1") is None
        assert client.get("/auth/session", headers=auth_headers).json()["authenticated"] is False
