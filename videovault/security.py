"""
Password hashing and bearer tokens.
"""

import base64
import hashlib
import hmac
import os
from typing import Optional, Tuple

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from videovault.config import settings

PBKDF2_ITERATIONS = 200_000
TOKEN_SALT = "videovault-auth"


def hash_password(password: str) -> Tuple[str, str]:
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return base64.b64encode(salt).decode("ascii"), base64.b64encode(dk).decode("ascii")


def verify_password(password: str, salt_b64: str, hash_b64: str) -> bool:
    try:
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected = base64.b64decode(hash_b64.encode("ascii"))
    except (ValueError, AttributeError):
        return False

    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(dk, expected)


def _serializer(secret_key: Optional[str] = None) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key or settings.SECRET_KEY, salt=TOKEN_SALT)


def issue_token(user_id: int, tenant_id: int, secret_key: Optional[str] = None) -> str:
    """Signed, timestamped token carrying the user and the workspace they entered."""
    return _serializer(secret_key).dumps({"uid": user_id, "tid": tenant_id})


def verify_token(
    token: str, secret_key: Optional[str] = None, max_age: Optional[int] = None
) -> Optional[Tuple[int, int]]:
    """Returns (user_id, tenant_id), or None for a bad or expired token."""
    if not token:
        return None
    max_age = max_age if max_age is not None else settings.TOKEN_MAX_AGE_SECONDS
    try:
        data = _serializer(secret_key).loads(token, max_age=max_age)
    except SignatureExpired:
        return None
    except BadSignature:
        return None

    try:
        return int(data["uid"]), int(data["tid"])
    except (KeyError, TypeError, ValueError):
        return None
