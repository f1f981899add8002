from fastapi import HTTPException, Depends, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from utils.deps import get_app_settings

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def auth_middleware(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
):
    """
    Resolve the acting principal from a bearer JWT. The principal is only
    used for provenance and role checks; no user lookup happens here.
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")

    settings = get_app_settings(request)
    try:
        claims = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")

    principal_id = claims.get("id")
    if principal_id is None:
        # signed, but not one of ours
        raise _unauthorized("Invalid token payload")

    roles = claims.get("roles") or ([claims["role"]] if claims.get("role") else [])
    return {
        "id": principal_id,
        "email": claims.get("email"),
        "role": claims.get("role") or (roles[0] if roles else None),
        "roles": roles,
    }
