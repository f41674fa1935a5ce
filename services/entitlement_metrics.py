"""Prometheus counters for promo redemption outcomes and premium evaluations."""

from __future__ import annotations

from typing import Optional, Sequence

from prometheus_client import REGISTRY, Counter

from core.logging import get_logger

logger = get_logger(__name__)


def _build_counter(name: str, documentation: str, labelnames: Sequence[str]) -> Optional[Counter]:
    """Create a Counter, reusing the registered one when the module is reloaded."""
    try:
        return Counter(name, documentation, tuple(labelnames))
    except ValueError:
        existing = getattr(REGISTRY, "_names_to_collectors", {})
        collector = existing.get(name) or existing.get(f"{name}_total")
        if collector is None:
            logger.debug("Counter %s already registered but not found in registry.", name)
        return collector


_REDEMPTION_COUNTER = _build_counter(
    "promo_redemptions",
    "Promo code redemption attempts grouped by outcome.",
    ("outcome",),
)
_EVALUATION_COUNTER = _build_counter(
    "premium_status_evaluations",
    "Premium status evaluations grouped by the winning entitlement source.",
    ("source",),
)


def record_redemption(outcome: str) -> None:
    if _REDEMPTION_COUNTER is None:
        return
    _REDEMPTION_COUNTER.labels(outcome=outcome or "unknown").inc()


def record_evaluation(source: str) -> None:
    if _EVALUATION_COUNTER is None:
        return
    _EVALUATION_COUNTER.labels(source=source or "unknown").inc()


__all__ = ["record_evaluation", "record_redemption"]
