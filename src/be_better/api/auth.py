"""Bearer-token authentication dependencies."""

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from be_better.db import sessions_repo

bearer_scheme = HTTPBearer(auto_error=False)


def get_session_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Return the bearer token from the Authorization header, or reject with 401."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="no token")
    return credentials.credentials


def get_current_user_id(token: str = Depends(get_session_token)) -> str:
    """Resolve the session token to a user id, or reject with 401."""
    user_id = sessions_repo.get_user_id_for_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="invalid token")
    return user_id
