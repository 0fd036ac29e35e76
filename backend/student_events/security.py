"""Password hashing and JWT issuing/decoding."""
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from student_events.config import settings
from student_events.errors import AppError

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _secret_for(token_type: str) -> str:
    return settings.JWT_REFRESH_SECRET if token_type == REFRESH else settings.JWT_SECRET


def _encode(claims: dict[str, Any], token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "type": token_type, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str, role: str) -> str:
    return _encode(
        {"sub": user_id, "role": role},
        ACCESS,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: str) -> str:
    return _encode({"sub": user_id}, REFRESH, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def decode_token(token: str, token_type: str = ACCESS) -> dict[str, Any]:
    """Return the claims of a valid token of ``token_type`` or raise a 401 ``AppError``."""
    prefix = "REFRESH_" if token_type == REFRESH else ""
    try:
        claims = jwt.decode(token, _secret_for(token_type), algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AppError("Your token has expired. Please log in again.", 401, f"{prefix}TOKEN_EXPIRED")
    except JWTError:
        raise AppError("Invalid token. Please log in again.", 401, f"INVALID_{prefix}TOKEN")

    if claims.get("type") != token_type or not claims.get("sub"):
        raise AppError("Invalid token. Please log in again.", 401, f"INVALID_{prefix}TOKEN")
    return claims
