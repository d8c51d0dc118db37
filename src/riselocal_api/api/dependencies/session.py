"""Resolve the consumer behind a forwarded session header."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.db.session import get_session
from riselocal_api.models.user import User
from riselocal_api.services.deals import DealDirectory


def _parse_session_user(raw: str | None) -> UUID:
    if not raw or not raw.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    try:
        return UUID(raw.strip())
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error


async def require_member_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Return the user that issuance, one-tap redemption and history act for.

    The web tier authenticates the member and forwards their id; pass
    membership is evaluated later against each deal, not here.
    """

    user_id = _parse_session_user(session_user)
    user = await DealDirectory(db).get_user(user_id)
    if user is None:
        logger.info("Rejected unknown session user", user_id=str(user_id))
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session user not found",
        )
    return user
