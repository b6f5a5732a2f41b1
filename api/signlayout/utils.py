import base64, hashlib
from itsdangerous import URLSafeSerializer
from .config import SECRET_KEY, WEB_BASE_URL

def data_url_to_bytes(data_url: str) -> bytes:
    # expects "data:image/png;base64,....."
    if "," in data_url:
        data_url = data_url.split(",", 1)[1]
    return base64.b64decode(data_url)

def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()

def make_token(payload: dict) -> str:
    s = URLSafeSerializer(SECRET_KEY, salt="signing")
    return s.dumps(payload)

def read_token(token: str) -> dict:
    s = URLSafeSerializer(SECRET_KEY, salt="signing")
    return s.loads(token)

def signer_link(document_id: str, signer_id: str) -> str:
    token = make_token({"document_id": document_id, "signer_id": signer_id})
    return f"{WEB_BASE_URL.rstrip('/')}/sign/{token}"
