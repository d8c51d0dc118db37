"""Query layer for deal redemption rows."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.models.deal import Deal
from riselocal_api.models.redemption import DealRedemption, RedemptionFlow, RedemptionStatus
from riselocal_api.services.redemptions.results import OutstandingCode
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow


def effective_status(redemption: DealRedemption, *, now: datetime) -> RedemptionStatus:
    """Stored status, with an ``issued`` code past its expiry reported as ``expired``."""

    if redemption.status != RedemptionStatus.ISSUED:
        return redemption.status
    expires_at = as_utc(redemption.expires_at)
    if expires_at is not None and expires_at <= as_utc(now):
        return RedemptionStatus.EXPIRED
    return RedemptionStatus.ISSUED


class RedemptionStore:
    """Durable record of every issued, verified, voided, expired or redeemed row.

    Counts are always recomputed from storage. State transitions are single
    conditional ``UPDATE`` statements guarded on the current status, and the
    caller inspects the affected row count instead of reading first.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get(self, redemption_id: UUID) -> DealRedemption | None:
        return await self._db.get(DealRedemption, redemption_id)

    async def find_by_code(self, code: str) -> DealRedemption | None:
        stmt = select(DealRedemption).where(
            DealRedemption.flow == RedemptionFlow.CODE,
            DealRedemption.code == code,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        stmt = select(DealRedemption.id).where(DealRedemption.code == code).limit(1)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_active_redemption_for_user_deal(
        self,
        user_id: UUID,
        deal_id: UUID,
        *,
        now: datetime | None = None,
    ) -> DealRedemption | None:
        """Return the user's live issued code for a deal, if any."""

        reference = as_utc(now) or utcnow()
        stmt = (
            select(DealRedemption)
            .where(
                DealRedemption.flow == RedemptionFlow.CODE,
                DealRedemption.user_id == user_id,
                DealRedemption.deal_id == deal_id,
                DealRedemption.status == RedemptionStatus.ISSUED,
                DealRedemption.expires_at > reference,
            )
            .order_by(DealRedemption.issued_at.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_verified_count_for_deal(self, user_id: UUID, deal_id: UUID) -> int:
        stmt = select(func.count(DealRedemption.id)).where(
            DealRedemption.flow == RedemptionFlow.CODE,
            DealRedemption.user_id == user_id,
            DealRedemption.deal_id == deal_id,
            DealRedemption.status == RedemptionStatus.VERIFIED,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def get_total_verified_count_for_deal(self, deal_id: UUID) -> int:
        stmt = select(func.count(DealRedemption.id)).where(
            DealRedemption.flow == RedemptionFlow.CODE,
            DealRedemption.deal_id == deal_id,
            DealRedemption.status == RedemptionStatus.VERIFIED,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def get_last_verified_redemption_for_user_deal(
        self, user_id: UUID, deal_id: UUID
    ) -> DealRedemption | None:
        stmt = (
            select(DealRedemption)
            .where(
                DealRedemption.flow == RedemptionFlow.CODE,
                DealRedemption.user_id == user_id,
                DealRedemption.deal_id == deal_id,
                DealRedemption.status == RedemptionStatus.VERIFIED,
            )
            .order_by(DealRedemption.verified_at.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def expire_lapsed_for_user_deal(self, user_id: UUID, deal_id: UUID, *, now: datetime) -> int:
        """Move the user's issued-but-lapsed codes for a deal to ``expired``."""

        stmt = (
            update(DealRedemption)
            .where(
                DealRedemption.flow == RedemptionFlow.CODE,
                DealRedemption.user_id == user_id,
                DealRedemption.deal_id == deal_id,
                DealRedemption.status == RedemptionStatus.ISSUED,
                DealRedemption.expires_at <= as_utc(now),
            )
            .values(status=RedemptionStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        if result.rowcount:
            logger.info(
                "Lapsed stale redemption codes",
                user_id=str(user_id),
                deal_id=str(deal_id),
                count=result.rowcount,
            )
        return int(result.rowcount or 0)

    async def create_issued(
        self,
        deal: Deal,
        *,
        user_id: UUID,
        code: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> DealRedemption:
        redemption = DealRedemption(
            deal_id=deal.id,
            vendor_id=deal.vendor_id,
            user_id=user_id,
            flow=RedemptionFlow.CODE,
            code=code,
            status=RedemptionStatus.ISSUED,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        self._db.add(redemption)
        await self._db.flush()
        return redemption

    async def _transition(
        self,
        redemption: DealRedemption,
        *,
        expected: RedemptionStatus,
        values: dict[str, object],
    ) -> bool:
        stmt = (
            update(DealRedemption)
            .where(
                DealRedemption.id == redemption.id,
                DealRedemption.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        await self._db.refresh(redemption)
        return result.rowcount == 1

    async def mark_verified(self, redemption: DealRedemption, *, now: datetime) -> bool:
        """Compare-and-swap ``issued`` -> ``verified``; False when another caller won."""

        return await self._transition(
            redemption,
            expected=RedemptionStatus.ISSUED,
            values={"status": RedemptionStatus.VERIFIED, "verified_at": now},
        )

    async def mark_expired(self, redemption: DealRedemption) -> bool:
        return await self._transition(
            redemption,
            expected=RedemptionStatus.ISSUED,
            values={"status": RedemptionStatus.EXPIRED},
        )

    async def mark_voided(self, redemption: DealRedemption, *, now: datetime, reason: str | None) -> bool:
        return await self._transition(
            redemption,
            expected=RedemptionStatus.ISSUED,
            values={"status": RedemptionStatus.VOIDED, "voided_at": now, "void_reason": reason},
        )

    async def get_last_direct_redemption(self, user_id: UUID, deal_id: UUID) -> DealRedemption | None:
        stmt = (
            select(DealRedemption)
            .where(
                DealRedemption.flow == RedemptionFlow.DIRECT,
                DealRedemption.user_id == user_id,
                DealRedemption.deal_id == deal_id,
            )
            .order_by(DealRedemption.redeemed_at.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_direct(
        self,
        deal: Deal,
        *,
        user_id: UUID,
        redeemed_at: datetime,
        source: str | None = None,
    ) -> DealRedemption:
        redemption = DealRedemption(
            deal_id=deal.id,
            vendor_id=deal.vendor_id,
            user_id=user_id,
            flow=RedemptionFlow.DIRECT,
            status=RedemptionStatus.REDEEMED,
            redeemed_at=redeemed_at,
            source=source,
        )
        self._db.add(redemption)
        await self._db.flush()
        return redemption

    async def lock_deal(self, deal_id: UUID) -> None:
        """Serialize one-tap redemptions of a deal for the rest of the transaction."""

        stmt = select(Deal.id).where(Deal.id == deal_id).with_for_update()
        await self._db.execute(stmt)

    async def create_direct_unless_redeemed(
        self,
        deal: Deal,
        *,
        user_id: UUID,
        redeemed_at: datetime,
        since: datetime | None,
        source: str | None = None,
    ) -> DealRedemption | None:
        """Insert a ``redeemed`` row only if no one-tap row exists after ``since``.

        ``since=None`` means any earlier one-tap row blocks. The existence check
        and the insert are one ``INSERT ... SELECT ... WHERE NOT EXISTS``
        statement; None is returned when a prior row won.
        """

        prior = select(DealRedemption.id).where(
            DealRedemption.flow == RedemptionFlow.DIRECT,
            DealRedemption.user_id == user_id,
            DealRedemption.deal_id == deal.id,
        )
        if since is not None:
            prior = prior.where(DealRedemption.redeemed_at > since)

        redemption_id = uuid4()
        values = [
            (DealRedemption.id, redemption_id),
            (DealRedemption.deal_id, deal.id),
            (DealRedemption.vendor_id, deal.vendor_id),
            (DealRedemption.user_id, user_id),
            (DealRedemption.flow, RedemptionFlow.DIRECT),
            (DealRedemption.status, RedemptionStatus.REDEEMED),
            (DealRedemption.redeemed_at, redeemed_at),
            (DealRedemption.source, source),
        ]
        rows = select(*(literal(value, type_=column.type) for column, value in values)).where(~prior.exists())
        stmt = insert(DealRedemption).from_select([column.key for column, _ in values], rows)
        result = await self._db.execute(stmt)
        if result.rowcount != 1:
            return None
        return await self._db.get(DealRedemption, redemption_id)

    async def list_outstanding_for_vendor(
        self,
        vendor_id: UUID,
        *,
        deal_id: UUID | None = None,
        now: datetime | None = None,
    ) -> list[OutstandingCode]:
        """Issued codes for a vendor, reporting lapsed ones as expired without writing."""

        reference = as_utc(now) or utcnow()
        stmt = select(DealRedemption).where(
            DealRedemption.flow == RedemptionFlow.CODE,
            DealRedemption.vendor_id == vendor_id,
            DealRedemption.status == RedemptionStatus.ISSUED,
        )
        if deal_id is not None:
            stmt = stmt.where(DealRedemption.deal_id == deal_id)
        stmt = stmt.order_by(DealRedemption.expires_at.asc())
        result = await self._db.execute(stmt)

        outstanding: list[OutstandingCode] = []
        for redemption in result.scalars().all():
            expires_at = as_utc(redemption.expires_at)
            remaining = int((expires_at - reference).total_seconds()) if expires_at else 0
            outstanding.append(
                OutstandingCode(
                    redemption=redemption,
                    effective_status=effective_status(redemption, now=reference),
                    seconds_remaining=max(remaining, 0),
                )
            )
        return outstanding

    async def list_for_user(self, user_id: UUID, *, limit: int = 50) -> Sequence[DealRedemption]:
        occurred_at = func.coalesce(DealRedemption.issued_at, DealRedemption.redeemed_at)
        stmt = (
            select(DealRedemption)
            .where(DealRedemption.user_id == user_id)
            .order_by(occurred_at.desc(), DealRedemption.created_at.desc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["RedemptionStore", "effective_status"]
