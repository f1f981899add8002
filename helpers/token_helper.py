import jwt
import datetime
from typing import Any, Dict, List, Optional

from config.settings import settings  # must define SECRET_KEY and ALGORITHM


def create_access_token(
    payload: Dict[str, Any],
    expires_minutes: Optional[int] = None,
    secret_key: Optional[str] = None,
) -> str:
    """
    Generate a JWT access token with the given payload and expiration.
    """
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(minutes=minutes)
    to_encode = payload.copy()
    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, secret_key or settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_principal_token(
    user_id: Any,
    email: Optional[str] = None,
    roles: Optional[List[str]] = None,
    expires_minutes: Optional[int] = None,
    secret_key: Optional[str] = None,
) -> str:
    """
    Token for a principal, embedding:
      - id
      - email
      - role (first role, kept for provenance records)
      - roles
    """
    roles = roles or ["user"]
    token_payload: Dict[str, Any] = {
        "id": user_id,
        "email": email,
        "role": roles[0],
        "roles": roles,
    }
    return create_access_token(token_payload, expires_minutes, secret_key)
