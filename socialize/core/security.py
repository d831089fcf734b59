import base64
import hashlib
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from passlib.context import CryptContext

from socialize.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
DOWNLOAD_TOKEN_TYPE = "download"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_jwt_token(
    subject: str,
    token_type: str,
    expires_delta: timedelta,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a signed JWT.

    ``token_type`` is stored in the ``type`` claim and checked on decode so an
    access token cannot be replayed as a refresh or download token.
    """
    now = utcnow()
    payload = {
        "sub": subject,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    if extra_claims:
        payload.update(extra_claims)

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_jwt_token(token: str, token_type: str) -> Optional[dict]:
    """
    Verify JWT token and return payload if valid
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != token_type:
        return None
    return payload


def generate_token_id() -> str:
    return secrets.token_urlsafe(24)


def _credentials_key() -> bytes:
    """Derive the Fernet key from the configured master secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b'socialize-credentials-v1',
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(settings.CREDENTIALS_ENCRYPTION_KEY.encode()))


_fernet: Optional[Fernet] = None


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        _fernet = Fernet(_credentials_key())
    return _fernet


def encrypt_credentials(credentials: Dict[str, Any]) -> str:
    """Encrypt a credentials map for storage."""
    return _get_fernet().encrypt(json.dumps(credentials).encode()).decode()


def decrypt_credentials(token: str) -> Dict[str, Any]:
    """Decrypt a stored credentials map. Raises ValueError on tampered data."""
    try:
        return json.loads(_get_fernet().decrypt(token.encode()))
    except InvalidToken as e:
        raise ValueError("Stored credentials could not be decrypted") from e


def fingerprint(value: str) -> str:
    """Short, non-reversible identifier for logging secrets and storage keys."""
    return hashlib.sha256(value.encode()).hexdigest()[:8]
