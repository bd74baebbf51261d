# wrapped/services/user_auth.py
import secrets
import time
import jwt
from fastapi import HTTPException, Header
from wrapped.config.settings import JWT_SECRET, JWT_EXPIRE_SECONDS

JWT_ALGORITHM = "HS256"
STATE_EXPIRE_SECONDS = 600  # OAuth state is valid 10 minutes


def create_jwt_token(user_id: str) -> str:
    payload = {
        "user_id": user_id,
        "exp": int(time.time()) + JWT_EXPIRE_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_oauth_state() -> str:
    """Signed, short-lived state for the Spotify authorize redirect."""
    payload = {
        "nonce": secrets.token_urlsafe(16),
        "purpose": "spotify_oauth",
        "exp": int(time.time()) + STATE_EXPIRE_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_oauth_state(state: str) -> bool:
    try:
        payload = jwt.decode(state, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return False
    return payload.get("purpose") == "spotify_oauth"


def get_current_user(authorization: str = Header(None)) -> dict:
    """
    Resolve user_id from Authorization: Bearer <JWT token>.
    The JWT only names the user; Spotify tokens never leave the server.
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid token format")

    token = authorization.split(" ", 1)[1]

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return {"user_id": user_id}
