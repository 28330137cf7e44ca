"""Remote ledger endpoints for the authenticated user."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from be_better.api.auth import get_current_user_id
from be_better.api.models import ModifyRequest, ModifyResponse, UserRecord, UserResponse
from be_better.db import users_repo
from be_better.db.users_repo import NegativeTotalError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/user", response_model=UserResponse)
async def get_user(user_id: str = Depends(get_current_user_id)):
    """Return the caller's account and totals."""
    row = users_repo.get_user(user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="user not found")
    return UserResponse(user=UserRecord(**row))


@router.post("/user/modify", response_model=ModifyResponse)
async def modify_user(request: ModifyRequest, user_id: str = Depends(get_current_user_id)):
    """
    Apply signed xp/coins deltas and return the new absolute totals.

    The level is recomputed from the new xp in the same transaction. A delta
    that would make a total negative is rejected with 409 and changes
    nothing.
    """
    try:
        row = users_repo.apply_deltas(
            user_id, xp_delta=request.xp_delta, coins_delta=request.coins_delta
        )
    except NegativeTotalError as exc:
        logger.info("Rejected modify for %s: %s", user_id, exc)
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    if row is None:
        raise HTTPException(status_code=404, detail="user not found")

    logger.debug(
        "Modified %s: xpDelta=%d coinsDelta=%d -> xp=%d coins=%d level=%d",
        user_id,
        request.xp_delta,
        request.coins_delta,
        row["xp"],
        row["coins"],
        row["level"],
    )
    return ModifyResponse(user=UserRecord(**row))
