# wrapped/services/token_store.py
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional
from pydantic import ValidationError
from wrapped.models.session_models import Session
from wrapped.services.firestore_client import get_db

logger = logging.getLogger(__name__)

SESSION_COLLECTION = "spotify_sessions"


class TokenStore(ABC):
    """Where each user's Spotify Session is persisted between requests."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    def save(self, user_id: str, session: Session) -> None:
        ...

    @abstractmethod
    def delete(self, user_id: str) -> None:
        ...


class FirestoreTokenStore(TokenStore):
    def __init__(self, collection: str = SESSION_COLLECTION):
        self.collection = collection

    def _doc(self, user_id: str):
        return get_db().collection(self.collection).document(user_id)

    def get(self, user_id: str) -> Optional[Session]:
        doc = self._doc(user_id).get()
        if not doc.exists:
            return None

        try:
            return Session(**doc.to_dict())
        except ValidationError as e:
            logger.warning(f"Stored session for {user_id} is malformed: {e}")
            return None

    def save(self, user_id: str, session: Session) -> None:
        self._doc(user_id).set(session.model_dump(mode="json"))

    def delete(self, user_id: str) -> None:
        self._doc(user_id).delete()


class MemoryTokenStore(TokenStore):
    """Process-local store for development and tests."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(user_id)

    def save(self, user_id: str, session: Session) -> None:
        with self._lock:
            self._sessions[user_id] = session

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._sessions.pop(user_id, None)


def build_token_store(kind: str) -> TokenStore:
    if kind == "memory":
        logger.info("Using in-memory Spotify session store")
        return MemoryTokenStore()
    return FirestoreTokenStore()
