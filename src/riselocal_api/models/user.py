from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from riselocal_api.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    is_pass_member = Column(Boolean, nullable=False, default=False, server_default="false")
    pass_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def has_active_pass(self, now: datetime | None = None) -> bool:
        """Return whether the user holds a Rise Local Pass that has not lapsed."""

        if not self.is_pass_member or self.pass_expires_at is None:
            return False
        expires_at = self.pass_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        reference = now or datetime.now(timezone.utc)
        return expires_at > reference
