"""Read access to deals, vendors and users for the redemption engine."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.models.deal import Deal
from riselocal_api.models.user import User
from riselocal_api.models.vendor import Vendor


class DealDirectory:
    """Collaborator lookups; deal and vendor CRUD lives elsewhere."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_deal_by_id(self, deal_id: UUID) -> Deal | None:
        return await self._db.get(Deal, deal_id)

    async def get_vendor(self, vendor_id: UUID) -> Vendor | None:
        return await self._db.get(Vendor, vendor_id)

    async def get_user(self, user_id: UUID) -> User | None:
        return await self._db.get(User, user_id)


__all__ = ["DealDirectory"]
