import os
from dotenv import load_dotenv

def load_env():
    if os.getenv("ENVIRONMENT") == "production":
        return

    base_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    env_path = os.path.join(base_dir, ".env")

    if os.path.exists(env_path):
        load_dotenv(env_path)

# Load env now
load_env()

# Spotify
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:8000/auth/callback")
SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE = "https://api.spotify.com/v1"
SPOTIFY_SCOPES = (
    "user-read-private user-read-email user-top-read user-read-recently-played "
    "user-follow-read user-library-read playlist-read-private playlist-read-collaborative"
)

# JWT
JWT_SECRET = os.getenv("JWT_SECRET", "PLEASE_SET_SECRET")
JWT_EXPIRE_SECONDS = int(os.getenv("JWT_EXPIRE_SECONDS", str(3600 * 24 * 7)))

# Token session
TOKEN_STORE = os.getenv("TOKEN_STORE", "firestore")  # firestore | memory
TOKEN_REFRESH_SKEW_SECONDS = int(os.getenv("TOKEN_REFRESH_SKEW_SECONDS", "0"))

# Response cache
CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory")  # memory | redis
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", "300"))  # 5 minutes
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "1000"))

# Redis
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")

# Upstream HTTP
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "8"))

# Server
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# GCP Credentials (base64)
GOOGLE_CLOUD_CREDENTIALS = os.getenv("GOOGLE_CLOUD_CREDENTIALS")
