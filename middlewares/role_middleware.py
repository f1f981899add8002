from fastapi import HTTPException, Depends, Request, status
from typing import List, Dict, Any, Optional
from middlewares.auth_middleware import auth_middleware
from utils.deps import get_app_settings


def role_middleware(required_roles: Optional[List[str]] = None):
    """
    Gate a route on the principal's roles. Without explicit roles the
    running app's ADMIN_ROLES apply.
    """

    def dependency(request: Request, user: Dict[str, Any] = Depends(auth_middleware)):
        # auth_middleware already raises 401 for bad tokens, so user is guaranteed
        roles = required_roles if required_roles is not None else get_app_settings(request).admin_roles_list
        user_roles = user.get("roles", [])

        if roles and not any(r in user_roles for r in roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden: requires one of roles {roles}"
            )

        return user

    return dependency
