# wrapped/services/errors.py
from typing import Optional


class AuthExpiredError(Exception):
    """
    The user's Spotify session is missing or its refresh failed.
    Not retryable: the user has to sign in again.
    """

    def __init__(self, message: str = "Your Spotify session has expired. Please sign in again."):
        super().__init__(message)
        self.message = message


class UpstreamError(Exception):
    """Non-2xx or transport failure talking to the Spotify Web API."""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"Spotify error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class UpstreamRateLimitedError(UpstreamError):
    def __init__(self, detail: str = "", retry_after: Optional[int] = None):
        super().__init__(429, detail)
        self.retry_after = retry_after


class UpstreamUnavailableError(UpstreamError):
    pass
