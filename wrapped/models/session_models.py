# wrapped/models/session_models.py
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class SessionError(str, Enum):
    NONE = ""
    REFRESH_ACCESS_TOKEN_ERROR = "RefreshAccessTokenError"


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: int   # Unix timestamp
    token_type: str = "Bearer"
    scope: Optional[str] = None
    error: SessionError = SessionError.NONE

    @property
    def is_errored(self) -> bool:
        return self.error != SessionError.NONE


class TokenResult(BaseModel):
    """
    Outcome of TokenSessionManager.get_valid_token().
    Callers must check auth_error before touching the upstream API.
    """
    token: Optional[str] = None
    session: Optional[Session] = None
    auth_error: bool = False
