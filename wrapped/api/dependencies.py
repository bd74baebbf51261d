# wrapped/api/dependencies.py
from fastapi import Depends, Request
from wrapped.services.errors import AuthExpiredError
from wrapped.services.response_cache import ResponseCache
from wrapped.services.spotify_client import SpotifyClient
from wrapped.services.token_session_manager import TokenSessionManager
from wrapped.services.token_store import TokenStore
from wrapped.services.user_auth import get_current_user


# The process-wide instances are built once in wrapped.main and kept on app.state
def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.response_cache


def get_session_manager(request: Request) -> TokenSessionManager:
    return request.app.state.session_manager


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store


def get_spotify_client(
    user=Depends(get_current_user),
    manager: TokenSessionManager = Depends(get_session_manager),
) -> SpotifyClient:
    """
    Resolve a Spotify client with a valid bearer token for the current user.
    An errored or missing session stops here, before any Spotify call.
    """
    result = manager.get_valid_token_for_user(user["user_id"])
    if result.auth_error:
        raise AuthExpiredError()

    return SpotifyClient(result.token)
