"""
HTTP Basic authentication against the active backend's user store.
Disabled unless AUTH_ENABLED is set.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from shopledger.services.users.base import UserRead

security = HTTPBasic(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
) -> Optional[UserRead]:
    """
    Email + password checked with bcrypt against the user store of whichever
    backend the router currently selects. Returns None when auth is off.
    """
    settings = request.app.state.settings
    if not settings.AUTH_ENABLED:
        return None
    if credentials is None:
        raise _unauthorized("Authentication required")

    router = request.app.state.router
    user = await router.run(
        lambda backend: backend.users.authenticate(credentials.username, credentials.password)
    )
    if user is None:
        raise _unauthorized("Incorrect email or password")
    return user


# Usage: APIRouter(dependencies=[require_auth()])
def require_auth():
    return Depends(get_current_user)
