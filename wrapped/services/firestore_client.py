# wrapped/services/firestore_client.py
import base64
import json
import logging
from google.cloud import firestore
from google.oauth2 import service_account
from wrapped.config.settings import GOOGLE_CLOUD_CREDENTIALS

logger = logging.getLogger(__name__)

_cached_client = None


class FirestoreConfigError(RuntimeError):
    pass


def get_db():
    """
    Lazy-load the Firestore client that backs the Spotify session store.

    With GOOGLE_CLOUD_CREDENTIALS (base64 service account JSON) set, the client is
    built from it, which works on any non-GCP host. Without it we fall back to
    Application Default Credentials.
    """
    global _cached_client

    if _cached_client is not None:
        return _cached_client

    if not GOOGLE_CLOUD_CREDENTIALS:
        logger.info("GOOGLE_CLOUD_CREDENTIALS not set, using default Firestore credentials")
        _cached_client = firestore.Client()
        return _cached_client

    # 1. base64 → dict
    try:
        creds_json = json.loads(base64.b64decode(GOOGLE_CLOUD_CREDENTIALS))
    except ValueError as e:
        raise FirestoreConfigError(f"Failed to decode GOOGLE_CLOUD_CREDENTIALS: {e}") from e

    # 2. Service account credentials
    try:
        creds = service_account.Credentials.from_service_account_info(creds_json)
    except ValueError as e:
        raise FirestoreConfigError(f"Failed to create service account credentials: {e}") from e

    # 3. Firestore client
    _cached_client = firestore.Client(credentials=creds, project=creds.project_id)
    return _cached_client
