import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from coparent_service.config import settings

ACCESS_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(user_id: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    """Issue a token for a user; the auth service owns real issuance"""
    payload = {
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(token: str) -> Optional[str]:
    """Extract user_id from JWT token"""
    payload = decode_access_token(token)
    if not payload:
        return None
    return payload.get("user_id")
