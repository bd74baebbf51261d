from pydantic import BaseModel
from typing import Optional


# What /auth/callback hands back to the frontend
class SignInResponse(BaseModel):
    status: str
    user_id: str
    token: str


class SessionStatusResponse(BaseModel):
    user_id: str
    authenticated: bool
    expires_at: Optional[int] = None
    error: Optional[str] = None


class LogoutResponse(BaseModel):
    status: str
