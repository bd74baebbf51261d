# wrapped/api/spotify_auth_api.py
import logging
from urllib.parse import urlencode
from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import RedirectResponse
from wrapped.api.dependencies import get_session_manager, get_token_store
from wrapped.config.settings import (
    SPOTIFY_AUTH_URL,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_SCOPES,
)
from wrapped.models.auth_models import LogoutResponse, SessionStatusResponse, SignInResponse
from wrapped.services.errors import AuthExpiredError
from wrapped.services.spotify_client import SpotifyClient
from wrapped.services.token_session_manager import TokenSessionManager
from wrapped.services.token_store import TokenStore
from wrapped.services.user_auth import (
    create_jwt_token,
    create_oauth_state,
    get_current_user,
    verify_oauth_state,
)

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get(
    "/login",
    summary="Spotify Login",
    description="Redirect the browser to Spotify's authorization page.",
)
def login():
    params = {
        "client_id": SPOTIFY_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": SPOTIFY_REDIRECT_URI,
        "scope": SPOTIFY_SCOPES,
        "state": create_oauth_state(),
    }
    return RedirectResponse(f"{SPOTIFY_AUTH_URL}?{urlencode(params)}")


@router.get(
    "/callback",
    summary="Spotify OAuth Callback",
    description=(
        "Spotify redirects here with code/state. The code is exchanged for the "
        "token pair, which is stored server side; the caller gets an app JWT."
    ),
    response_model=SignInResponse,
)
def callback(
    code: str = Query(..., description="Authorization code from Spotify"),
    state: str = Query(..., description="Signed state issued by /auth/login"),
    manager: TokenSessionManager = Depends(get_session_manager),
    store: TokenStore = Depends(get_token_store),
):
    # 1. state must be the one we signed
    if not verify_oauth_state(state):
        raise HTTPException(status_code=400, detail="Missing or expired OAuth state")

    # 2. code → Session
    try:
        session = manager.exchange_code(code)
    except AuthExpiredError as e:
        raise HTTPException(status_code=400, detail=e.message)

    # 3. Spotify user id is our user id
    profile = SpotifyClient(session.access_token).me()
    user_id = profile.get("id")
    if not user_id:
        raise HTTPException(status_code=502, detail="Spotify profile has no id")

    # 4. Persist the token pair
    store.save(user_id, session)
    logger.info(f"Spotify sign-in completed for {user_id}")

    return {"status": "ok", "user_id": user_id, "token": create_jwt_token(user_id)}


@router.get("/session", response_model=SessionStatusResponse)
def session_status(
    user=Depends(get_current_user),
    store: TokenStore = Depends(get_token_store),
):
    user_id = user["user_id"]
    session = store.get(user_id)

    if session is None:
        return {"user_id": user_id, "authenticated": False}

    return {
        "user_id": user_id,
        "authenticated": not session.is_errored,
        "expires_at": session.expires_at,
        "error": session.error.value or None,
    }


@router.post("/logout", response_model=LogoutResponse)
def logout(
    user=Depends(get_current_user),
    store: TokenStore = Depends(get_token_store),
):
    store.delete(user["user_id"])
    return {"status": "ok"}
