# Password hashing and access token utilities.
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from quizhub.config import get_jwt_algorithm, get_jwt_secret, get_token_ttl_hours


# Hash a password with a salt using SHA-256.
def hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}{password}".encode("utf-8")).hexdigest()

# Generate a random salt string for password hashing.
def generate_salt() -> str:
    return secrets.token_hex(16)

# Compare a candidate password against the stored hash in constant time.
def verify_password(password_hash: str, salt: str, password: str) -> bool:
    return secrets.compare_digest(password_hash, hash_password(password, salt))


# Issue a signed token carrying the user id, role and expiry.
def create_access_token(
    user_id: str,
    role: str,
    secret: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    if expires_delta is None:
        expires_delta = timedelta(hours=get_token_ttl_hours())
    expire = datetime.now(tz=timezone.utc) + expires_delta
    claims = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(claims, secret or get_jwt_secret(), algorithm=get_jwt_algorithm())


# Decode a token, returning its claims or None when invalid or expired.
def validate_access_token(token: str, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    try:
        claims = jwt.decode(token, secret or get_jwt_secret(), algorithms=[get_jwt_algorithm()])
    except JWTError:
        return None
    if not claims.get("sub") or not claims.get("role"):
        return None
    return claims
