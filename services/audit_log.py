"""Shared helpers for DB-backed audit logging."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import database
from core.env import env_bool
from models.audit import AuditLog

logger = logging.getLogger(__name__)

AUDIT_LOG_ENABLED = env_bool("AUDIT_LOG_ENABLED", True)


def _session_factory() -> Session:
    return database.SessionLocal()


def record_audit_event(
    *,
    action: str,
    source: str,
    user_id: Optional[str] = None,
    target_id: Optional[str] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> None:
    """Persist an audit record into ``audit_logs`` in its own transaction.

    Audit rows never decide an outcome, so persistence failures are logged and dropped.
    """
    if not AUDIT_LOG_ENABLED:
        return

    session = _session_factory()
    try:
        session.add(
            AuditLog(
                ts=datetime.now(timezone.utc),
                user_id=user_id,
                action=action,
                source=source,
                target_id=target_id,
                extra=dict(extra or {}),
            )
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to persist audit log event action=%s source=%s.", action, source)
    finally:
        session.close()


# Convenience wrappers --------------------------------------------------------

def audit_promo_event(
    *,
    action: str,
    user_id: Optional[str],
    code: Optional[str],
    outcome: str,
    extra: Optional[Mapping[str, Any]] = None,
) -> None:
    record_audit_event(
        action=action,
        source="promo",
        user_id=user_id,
        target_id=code,
        extra={"outcome": outcome, **(extra or {})},
    )


def audit_account_event(
    *,
    action: str,
    user_id: Optional[str],
    extra: Optional[Mapping[str, Any]] = None,
) -> None:
    record_audit_event(action=action, source="account", user_id=user_id, target_id=user_id, extra=extra)


__all__ = [
    "audit_account_event",
    "audit_promo_event",
    "record_audit_event",
]
