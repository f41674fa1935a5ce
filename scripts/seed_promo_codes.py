"""Seed promo codes used for premium access grants."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from scripts._path import add_root

add_root()

from database import SessionLocal
from services.promo_ledger import create_promo_code

logger = logging.getLogger(__name__)

DEFAULT_CODE = "EASY2"
DEFAULT_DURATION_DAYS = 30


def seed(code: str, *, duration_days: Optional[int], max_redemptions: Optional[int]) -> str:
    session = SessionLocal()
    try:
        promo = create_promo_code(
            session,
            code=code,
            duration_days=duration_days,
            max_redemptions=max_redemptions,
        )
        return promo.code
    finally:
        session.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed a promo code for premium access.")
    parser.add_argument("--code", default=DEFAULT_CODE, help="Promo code text (stored upper-case).")
    parser.add_argument(
        "--duration-days",
        type=int,
        default=DEFAULT_DURATION_DAYS,
        help="Days of premium granted per redemption.",
    )
    parser.add_argument(
        "--lifetime",
        action="store_true",
        help="Grant lifetime access instead of a fixed number of days.",
    )
    parser.add_argument(
        "--max-redemptions",
        type=int,
        default=None,
        help="Total redemption cap across all users (omit for unlimited).",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    duration = None if args.lifetime else args.duration_days
    code = seed(args.code, duration_days=duration, max_redemptions=args.max_redemptions)
    scope = "lifetime" if duration is None else f"{duration} days"
    cap = "unlimited" if args.max_redemptions is None else str(args.max_redemptions)
    print(f"Promo code {code} ready ({scope}, {cap} redemptions).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
