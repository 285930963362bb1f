"""Initial schema: users, schedules, bookings, reports, gamification, outbox.

Booking exclusivity is enforced by the (schedule_id, shift_start) unique
constraint; the service maps its violation to a slot conflict.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa  # noqa: F401
from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id          BIGSERIAL PRIMARY KEY,
            phone       VARCHAR(32) NOT NULL,
            name        VARCHAR(128) NOT NULL,
            role        VARCHAR(16) NOT NULL DEFAULT 'volunteer',
            created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_users_phone UNIQUE (phone)
        )
    """)

    # --- Scheduling ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS schedules (
            id                BIGSERIAL PRIMARY KEY,
            name              VARCHAR(128) NOT NULL,
            cron_expr         VARCHAR(128) NOT NULL,
            start_date        DATE,
            end_date          DATE,
            duration_minutes  INT NOT NULL DEFAULT 120,
            timezone          VARCHAR(64) NOT NULL DEFAULT 'UTC',
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS bookings (
            id             BIGSERIAL PRIMARY KEY,
            user_id        BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            schedule_id    BIGINT NOT NULL REFERENCES schedules(id) ON DELETE CASCADE,
            shift_start    TIMESTAMPTZ NOT NULL,
            shift_end      TIMESTAMPTZ NOT NULL,
            buddy_user_id  BIGINT REFERENCES users(id) ON DELETE SET NULL,
            buddy_name     VARCHAR(128),
            checked_in_at  TIMESTAMPTZ,
            created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT bookings_schedule_id_shift_start_key UNIQUE (schedule_id, shift_start)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_bookings_user_id ON bookings (user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_bookings_shift_start ON bookings (shift_start)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS reports (
            id          BIGSERIAL PRIMARY KEY,
            booking_id  BIGINT NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
            user_id     BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            severity    INT NOT NULL DEFAULT 0 CHECK (severity BETWEEN 0 AND 2),
            message     TEXT NOT NULL DEFAULT '',
            created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_reports_booking_id ON reports (booking_id)")

    # --- Gamification ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_history (
            id              BIGSERIAL PRIMARY KEY,
            user_id         BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            booking_id      BIGINT REFERENCES bookings(id) ON DELETE SET NULL,
            points_awarded  INT NOT NULL,
            reason          VARCHAR(32) NOT NULL,
            multiplier      DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_points_history_user_created
        ON points_history (user_id, created_at)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id                BIGSERIAL PRIMARY KEY,
            slug              VARCHAR(64) NOT NULL,
            name              VARCHAR(128) NOT NULL,
            description       TEXT NOT NULL DEFAULT '',
            icon              VARCHAR(64),
            shifts_threshold  INT,
            points_threshold  INT,
            streak_threshold  INT,
            sort_order        INT NOT NULL DEFAULT 0,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_achievements_slug UNIQUE (slug)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            user_id         BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id  BIGINT NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            earned_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (user_id, achievement_id)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_game_state (
            user_id             BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_points        DOUBLE PRECISION NOT NULL DEFAULT 0,
            shift_count         INT NOT NULL DEFAULT 0,
            current_streak      INT NOT NULL DEFAULT 0,
            longest_streak      INT NOT NULL DEFAULT 0,
            last_activity_date  DATE,
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_game_state_points
        ON user_game_state (total_points DESC)
    """)

    # --- Outbox ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS outbox (
            id            BIGSERIAL PRIMARY KEY,
            message_type  VARCHAR(64) NOT NULL,
            recipient     VARCHAR(128) NOT NULL,
            payload       JSONB NOT NULL DEFAULT '{}'::jsonb,
            user_id       BIGINT REFERENCES users(id) ON DELETE SET NULL,
            booking_id    BIGINT,
            status        VARCHAR(16) NOT NULL DEFAULT 'pending',
            send_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
            retry_count   INT NOT NULL DEFAULT 0,
            last_error    TEXT,
            created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
            sent_at       TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_outbox_status_send_at ON outbox (status, send_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_outbox_booking_id ON outbox (booking_id)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_outbox_pending
        ON outbox (send_at)
        WHERE status = 'pending'
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS outbox CASCADE")
    op.execute("DROP TABLE IF EXISTS user_game_state CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS points_history CASCADE")
    op.execute("DROP TABLE IF EXISTS reports CASCADE")
    op.execute("DROP TABLE IF EXISTS bookings CASCADE")
    op.execute("DROP TABLE IF EXISTS schedules CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
