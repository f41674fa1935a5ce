import uuid

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class User(Base):
    """Account mirrored from the hosted auth provider; read-only to the entitlement core."""

    __tablename__ = "users"
    __table_args__ = {"extend_existing": True}

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=True)
    # Operator/support override; PREMIUM_ADMIN_EMAILS is honoured as well.
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
