"""Seed default class templates.

Usage examples:
  python -m paddock.seed
  python -m paddock.seed --club-id 3
  python -m paddock.seed --db-url sqlite:///./dev.db --club-id 1
"""

from __future__ import annotations

import argparse
import logging

from sqlalchemy import select

from . import models
from .accounts import copy_global_classes_to_club, ensure_superadmin
from .db import init_db, open_session

logger = logging.getLogger(__name__)

# (name, description, min kg, max kg)
DEFAULT_CLASSES = [
    ("Mini 60", "Cadet karting, 8-12 years", 110.0, 125.0),
    ("Junior 125", "Junior karting, 12-15 years", 145.0, 160.0),
    ("Senior 125", "Senior karting, 15+ years", 160.0, 175.0),
    ("KZ2", "Shifter karts", 175.0, 190.0),
    ("Touring 1600", "Production touring cars up to 1600cc", 950.0, 1150.0),
    ("Touring 2000", "Production touring cars up to 2000cc", 1050.0, 1250.0),
    ("Open", "Open class without weight band", None, None),
]


def seed_global_classes(session) -> int:
    have = set(session.execute(select(models.GlobalClass.name)).scalars().all())
    added = 0
    for name, description, min_w, max_w in DEFAULT_CLASSES:
        if name in have:
            continue
        session.add(models.GlobalClass(name=name, description=description, min_weight=min_w, max_weight=max_w))
        added += 1
    session.commit()
    return added


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Seed default class templates")
    ap.add_argument("--db-url", type=str, default=None, help="Database URL (defaults to PADDOCK_DB_URL)")
    ap.add_argument("--club-id", type=int, default=None, help="Also copy the global classes into this club")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    init_db(args.db_url)
    session = open_session()
    try:
        ensure_superadmin(session)
        added = seed_global_classes(session)
        logger.info("Added %d global classes", added)
        if args.club_id is not None:
            copied = copy_global_classes_to_club(session, args.club_id)
            logger.info("Copied %d classes into club %s", copied, args.club_id)
    finally:
        session.close()


if __name__ == "__main__":
    main()
