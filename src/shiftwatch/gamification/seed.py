"""Achievement catalogue seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from shiftwatch.db.dialect import upsert_insert
from shiftwatch.db.models import Achievement

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "slug": "owlet",
        "name": "Owlet",
        "description": "Complete your first shift",
        "icon": "owl-1",
        "shifts_threshold": 1,
        "sort_order": 1,
    },
    {
        "slug": "night_streak",
        "name": "Night Streak",
        "description": "Complete four shifts in a row without a week off",
        "icon": "flame",
        "streak_threshold": 4,
        "sort_order": 2,
    },
    {
        "slug": "dedicated_owl",
        "name": "Dedicated Owl",
        "description": "Complete ten shifts while on a four-shift streak",
        "icon": "owl-heart",
        "shifts_threshold": 10,
        "streak_threshold": 4,
        "sort_order": 3,
    },
    {
        "slug": "centurion",
        "name": "Centurion",
        "description": "Earn 100 points",
        "icon": "star",
        "points_threshold": 100,
        "sort_order": 4,
    },
    {
        "slug": "solid_owl",
        "name": "Solid Owl",
        "description": "Complete 20 shifts",
        "icon": "owl-2",
        "shifts_threshold": 20,
        "sort_order": 5,
    },
    {
        "slug": "wise_owl",
        "name": "Wise Owl",
        "description": "Complete 50 shifts",
        "icon": "owl-3",
        "shifts_threshold": 50,
        "sort_order": 6,
    },
    {
        "slug": "super_owl",
        "name": "Super Owl",
        "description": "Complete 100 shifts",
        "icon": "owl-4",
        "shifts_threshold": 100,
        "sort_order": 7,
    },
]

_THRESHOLDS = ("shifts_threshold", "points_threshold", "streak_threshold")


async def seed_achievements(db: AsyncSession) -> int:
    """Upsert the achievement catalogue by slug. Returns the number of rows written."""
    seeded = 0
    for data in ACHIEVEMENT_SEED_DATA:
        values = {field: None for field in _THRESHOLDS} | data
        stmt = upsert_insert(db, Achievement).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "shifts_threshold": stmt.excluded.shifts_threshold,
                "points_threshold": stmt.excluded.points_threshold,
                "streak_threshold": stmt.excluded.streak_threshold,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievements", seeded)
    return seeded
