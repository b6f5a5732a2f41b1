import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./signlayout.db")
MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "signing")
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
ADMIN_ACCESS_TOKEN = os.getenv("ADMIN_ACCESS_TOKEN")
WEB_BASE_URL = os.getenv("WEB_BASE_URL", "http://localhost:3000")
SINGLE_SIGNER_MODE = os.getenv("SINGLE_SIGNER_MODE", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
# seconds an editor session may sit idle before it is dropped; 0 keeps sessions until closed
EDITOR_SESSION_TTL = float(os.getenv("EDITOR_SESSION_TTL", "3600"))
