# wrapped/main.py
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wrapped.config.settings import (
    ALLOWED_ORIGINS,
    CACHE_BACKEND,
    CACHE_MAX_ENTRIES,
    CACHE_TTL_SECONDS,
    LOG_LEVEL,
    TOKEN_STORE,
)
from wrapped.services.errors import AuthExpiredError, UpstreamError, UpstreamRateLimitedError
from wrapped.services.response_cache import build_response_cache
from wrapped.services.token_session_manager import TokenSessionManager
from wrapped.services.token_store import build_token_store

# === Import Routers ===
from wrapped.api.spotify_auth_api import router as auth_router
from wrapped.api.spotify_api import router as spotify_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Spotify Wrapped Backend",
    description=(
        "Backend for: "
        "• Spotify OAuth sign-in with server-side token refresh "
        "• Cached playlist / track search "
        "• Top items and listening metrics"
    ),
    version="1.0.0"
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Process-wide state: one cache, one session manager ===
app.state.token_store = build_token_store(TOKEN_STORE)
app.state.session_manager = TokenSessionManager(store=app.state.token_store)
app.state.response_cache = build_response_cache(
    CACHE_BACKEND,
    ttl_seconds=CACHE_TTL_SECONDS,
    max_entries=CACHE_MAX_ENTRIES,
)


# === Error mapping ===
@app.exception_handler(AuthExpiredError)
def auth_expired_handler(request: Request, exc: AuthExpiredError):
    return JSONResponse(
        status_code=401,
        content={"error": "token_expired", "message": exc.message},
    )


@app.exception_handler(UpstreamError)
def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.warning(f"{request.url.path}: upstream failure {exc.status_code}")

    headers = {}
    if isinstance(exc, UpstreamRateLimitedError) and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)

    retryable = exc.status_code == 429 or exc.status_code >= 500
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "Spotify request failed", "retryable": retryable},
        headers=headers,
    )


# === Spotify OAuth ===
app.include_router(auth_router, prefix="/auth", tags=["Spotify OAuth"])

# === Spotify data API ===
app.include_router(spotify_router, prefix="/api/spotify", tags=["Spotify"])


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Spotify Wrapped Backend running",
    }
