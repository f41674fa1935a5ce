from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class AuditLog(Base):
    """Abuse-detection trail for entitlement actions (promo redemption, account deletion)."""

    __tablename__ = "audit_logs"
    __table_args__ = {"extend_existing": True}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ts = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    user_id = Column(String(64), nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    source = Column(String(32), nullable=False)
    target_id = Column(String(128), nullable=True)
    extra = Column(JSON, nullable=True)
