"""Recurring assignments: standing weekly claims on a schedule's slots.

day_of_week counts from 0 (Sunday); time_slot is "HH:MM-HH:MM" in the
schedule's own timezone. Deletion is soft, through is_active.

Revision ID: 002_recurring_assignments
Revises: 001_initial_schema
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_recurring_assignments"
down_revision: str | None = "001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS recurring_assignments (
            id           BIGSERIAL PRIMARY KEY,
            user_id      BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            schedule_id  BIGINT NOT NULL REFERENCES schedules(id) ON DELETE CASCADE,
            day_of_week  INTEGER NOT NULL CHECK (day_of_week BETWEEN 0 AND 6),
            time_slot    VARCHAR(11) NOT NULL,
            buddy_name   VARCHAR(128),
            description  TEXT,
            is_active    BOOLEAN NOT NULL DEFAULT true,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT recurring_assignments_pattern_key
                UNIQUE (user_id, day_of_week, schedule_id, time_slot)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_recurring_assignments_active "
        "ON recurring_assignments (schedule_id, day_of_week) WHERE is_active"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS recurring_assignments CASCADE")
