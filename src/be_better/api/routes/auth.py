"""Registration, login and logout endpoints."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException

from be_better.api.auth import get_current_user_id, get_session_token
from be_better.api.models import (
    LoginRequest,
    LoginResponse,
    OkResponse,
    RegisterRequest,
    RegisterResponse,
)
from be_better.db import sessions_repo, users_repo

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=RegisterResponse)
async def register(request: RegisterRequest):
    """
    Create an account with a fresh ledger (xp 0, level 1, starting coins).

    Returns 400 when username or password is blank and 409 when the
    username is taken.
    """
    username = request.username.strip()
    if not username or not request.password:
        raise HTTPException(status_code=400, detail="username and password required")

    if users_repo.user_exists(username):
        raise HTTPException(status_code=409, detail="username already taken")

    email = request.email.strip() if request.email else None
    user_id = users_repo.create_user(username, request.password, email=email)
    if user_id is None:
        # Lost a race against a concurrent registration of the same name
        raise HTTPException(status_code=409, detail="username already taken")

    logger.info("Registered user %s (%s)", username, user_id)
    return RegisterResponse(id=user_id)


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """Check credentials and issue a bearer token."""
    username = request.username.strip()
    if not username or not request.password:
        raise HTTPException(status_code=400, detail="username and password required")

    user_id = users_repo.verify_credentials(username, request.password)
    if user_id is None:
        raise HTTPException(status_code=401, detail="invalid credentials")

    removed = sessions_repo.cleanup_expired_sessions()
    if removed:
        logger.debug("Removed %d expired sessions", removed)

    token = uuid.uuid4().hex
    sessions_repo.create_session(user_id, token)
    logger.info("User logged in: %s", username)
    return LoginResponse(token=token)


@router.post("/logout", response_model=OkResponse)
async def logout(
    token: str = Depends(get_session_token),
    user_id: str = Depends(get_current_user_id),
):
    """End the caller's session."""
    sessions_repo.remove_session(token)
    logger.info("User logged out: %s", user_id)
    return OkResponse()
