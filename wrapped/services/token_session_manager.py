# wrapped/services/token_session_manager.py
"""
Keeps a user's Spotify access token valid.

A Session moves through Fresh → Expired → Refreshing → Fresh, or ends in
Errored when a refresh fails. Errored is terminal: only a new sign-in
(a new Session) recovers. A failed refresh is reported as a flag on the
session (TokenResult.auth_error), never as an exception, so every caller
has to check it before calling Spotify.

Refreshes are single-flight per refresh token. Requests that observe the same
expired token at the same time share one POST to the token endpoint, and
requests that arrive a moment later still holding the stale access token are
handed the already rotated session.
"""
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional

import requests

from wrapped.config.settings import (
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_TOKEN_URL,
    TOKEN_REFRESH_SKEW_SECONDS,
    UPSTREAM_TIMEOUT_SECONDS,
)
from wrapped.models.session_models import Session, SessionError, TokenResult
from wrapped.services.errors import AuthExpiredError
from wrapped.services.token_store import TokenStore

logger = logging.getLogger(__name__)

# How many stale-token → rotated-session hand-offs to remember
ROTATED_MEMORY = 256


class _RefreshInFlight:
    __slots__ = ("event", "session")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.session: Optional[Session] = None


class TokenSessionManager:
    def __init__(
        self,
        store: Optional[TokenStore] = None,
        http: Optional[requests.Session] = None,
        client_id: str = SPOTIFY_CLIENT_ID,
        client_secret: str = SPOTIFY_CLIENT_SECRET,
        token_url: str = SPOTIFY_TOKEN_URL,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
        refresh_skew: int = TOKEN_REFRESH_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.http = http if http is not None else requests.Session()
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self.refresh_skew = refresh_skew
        self.clock = clock

        self._lock = threading.Lock()
        self._in_flight: Dict[str, _RefreshInFlight] = {}
        self._rotated: "OrderedDict[str, Session]" = OrderedDict()

    # --------------------------
    # State checks
    # --------------------------
    def is_fresh(self, session: Session) -> bool:
        return self.clock() < session.expires_at - self.refresh_skew

    # --------------------------
    # get_valid_token
    # --------------------------
    def get_valid_token(self, session: Optional[Session]) -> TokenResult:
        # Errored or empty sessions never reach the network
        if session is None or session.is_errored or not session.access_token:
            return TokenResult(token=None, session=session, auth_error=True)

        if self.is_fresh(session):
            return TokenResult(token=session.access_token, session=session)

        refreshed = self._refresh_once(session)
        if refreshed.is_errored:
            return TokenResult(token=None, session=refreshed, auth_error=True)

        return TokenResult(token=refreshed.access_token, session=refreshed)

    def get_valid_token_for_user(self, user_id: str) -> TokenResult:
        """
        Load the user's session from the store, make sure it is usable and
        persist whatever the refresh produced (rotated or errored).
        """
        if self.store is None:
            raise RuntimeError("TokenSessionManager has no TokenStore configured")

        session = self.store.get(user_id)
        if session is None:
            return TokenResult(token=None, session=None, auth_error=True)

        result = self.get_valid_token(session)
        if result.session is not None and result.session != session:
            self.store.save(user_id, result.session)
            if result.auth_error:
                logger.warning(f"Spotify session for {user_id} is no longer usable, sign-in required")

        return result

    # --------------------------
    # Single-flight refresh
    # --------------------------
    def _refresh_once(self, session: Session) -> Session:
        key = session.refresh_token or session.access_token

        with self._lock:
            # Someone already rotated this exact token
            rotated = self._rotated.get(session.access_token)
            if rotated is not None and (rotated.is_errored or self.is_fresh(rotated)):
                return rotated

            slot = self._in_flight.get(key)
            is_leader = slot is None
            if is_leader:
                slot = _RefreshInFlight()
                self._in_flight[key] = slot

        if not is_leader:
            slot.event.wait()
            return slot.session

        try:
            slot.session = self.refresh(session)
        finally:
            if slot.session is None:
                slot.session = self._errored(session)

            with self._lock:
                self._rotated[session.access_token] = slot.session
                while len(self._rotated) > ROTATED_MEMORY:
                    self._rotated.popitem(last=False)
                self._in_flight.pop(key, None)

            slot.event.set()

        return slot.session

    # --------------------------
    # refresh
    # --------------------------
    def refresh(self, session: Session) -> Session:
        """
        Exchange the refresh token for a new access token.

        Spotify does not always send a new refresh_token, in that case the old
        one is kept. Any failure returns a copy flagged RefreshAccessTokenError
        with the previous token fields left as they were. No retries.
        """
        if not session.refresh_token:
            logger.warning("Cannot refresh Spotify session without a refresh_token")
            return self._errored(session)

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": session.refresh_token,
        }

        try:
            r = self.http.post(
                self.token_url,
                data=payload,
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Spotify token refresh failed: {e.__class__.__name__}: {e}")
            return self._errored(session)

        if not r.ok:
            logger.error(f"Spotify token refresh rejected: {r.status_code} {r.text}")
            return self._errored(session)

        try:
            data = r.json()
        except ValueError:
            logger.error("Spotify token refresh returned a non-JSON body")
            return self._errored(session)

        if not isinstance(data, dict) or "access_token" not in data:
            logger.error("Spotify token refresh response has no access_token")
            return self._errored(session)

        logger.info("Spotify access token refreshed")
        return session.model_copy(update={
            "access_token": data["access_token"],
            "expires_at": int(self.clock()) + int(data.get("expires_in", 3600)),
            # Keep the old refresh token when Spotify does not rotate it
            "refresh_token": data.get("refresh_token") or session.refresh_token,
            "scope": data.get("scope", session.scope),
            "token_type": data.get("token_type", session.token_type),
            "error": SessionError.NONE,
        })

    @staticmethod
    def _errored(session: Session) -> Session:
        return session.model_copy(update={"error": SessionError.REFRESH_ACCESS_TOKEN_ERROR})

    # --------------------------
    # Sign-in
    # --------------------------
    def exchange_code(self, code: str, redirect_uri: str = SPOTIFY_REDIRECT_URI) -> Session:
        """Authorization-code exchange at sign-in; creates a brand-new Session."""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }

        try:
            r = self.http.post(
                self.token_url,
                data=payload,
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Spotify code exchange failed: {e}")
            raise AuthExpiredError("Could not reach Spotify to complete sign-in") from e

        try:
            token_data = r.json()
        except ValueError:
            token_data = {}

        if not r.ok or "access_token" not in token_data:
            logger.error(f"Spotify code exchange rejected: {r.status_code} {r.text}")
            raise AuthExpiredError("Spotify sign-in failed, please try again")

        return Session(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_at=int(self.clock()) + int(token_data.get("expires_in", 3600)),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope"),
        )
