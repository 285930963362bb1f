"""Integration tests for leaderboard ranking."""

from __future__ import annotations

import pytest
import pytest_asyncio

from shiftwatch.db.models import UserGameState
from shiftwatch.errors import ShiftwatchError
from shiftwatch.leaderboard.service import rank_of, top, top_by_points, top_by_shift_count, top_by_streak, user_stats


@pytest_asyncio.fixture
async def board(db_session, make_user):
    """Four players with a tie for second place, plus one with no activity."""
    rows = [
        ("+100", "Amahle", 50.0, 4, 2, 3),
        ("+200", "Bongani", 30.0, 2, 1, 1),
        ("+300", "Chloe", 30.0, 3, 3, 3),
        ("+400", "Dineo", 10.0, 1, 0, 1),
    ]
    users = {}
    for phone, name, points, shifts, current, longest in rows:
        user = await make_user(phone, name)
        db_session.add(
            UserGameState(
                user_id=user.id,
                total_points=points,
                shift_count=shifts,
                current_streak=current,
                longest_streak=longest,
            )
        )
        users[name] = user
    users["Idle"] = await make_user("+500", "Idle")
    await db_session.commit()
    return users


class TestPointsBoard:
    @pytest.mark.asyncio
    async def test_ties_share_rank_and_next_rank_skips(self, db_session, board):
        rows = await top_by_points(db_session)
        assert [(r.rank, r.name) for r in rows] == [
            (1, "Amahle"),
            (2, "Chloe"),  # tie broken for display by shift count
            (2, "Bongani"),
            (4, "Dineo"),
        ]

    @pytest.mark.asyncio
    async def test_zero_score_excluded(self, db_session, board):
        assert "Idle" not in [r.name for r in await top(db_session, "points")]

    @pytest.mark.asyncio
    async def test_limit(self, db_session, board):
        assert len(await top(db_session, "points", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_rank_of_matches_board(self, db_session, board):
        assert await rank_of(db_session, board["Amahle"].id) == 1
        assert await rank_of(db_session, board["Bongani"].id) == 2
        assert await rank_of(db_session, board["Chloe"].id) == 2
        assert await rank_of(db_session, board["Dineo"].id) == 4
        # No game-state row: ranks after everyone with a positive score
        assert await rank_of(db_session, board["Idle"].id) == 5


class TestOtherMetrics:
    @pytest.mark.asyncio
    async def test_shift_count(self, db_session, board):
        rows = await top_by_shift_count(db_session)
        assert [(r.rank, r.name, r.shift_count) for r in rows] == [
            (1, "Amahle", 4),
            (2, "Chloe", 3),
            (3, "Bongani", 2),
            (4, "Dineo", 1),
        ]

    @pytest.mark.asyncio
    async def test_current_streak_excludes_broken(self, db_session, board):
        rows = await top_by_streak(db_session)
        assert [(r.rank, r.name) for r in rows] == [(1, "Chloe"), (2, "Amahle"), (3, "Bongani")]
        assert await rank_of(db_session, board["Dineo"].id, "streak") == 4

    @pytest.mark.asyncio
    async def test_unknown_metric(self, db_session, board):
        with pytest.raises(ValueError) as excinfo:
            await top(db_session, "karma")
        assert not isinstance(excinfo.value, ShiftwatchError)


class TestUserStats:
    @pytest.mark.asyncio
    async def test_stats(self, db_session, board):
        stats = await user_stats(db_session, board["Chloe"].id)
        assert (stats.total_points, stats.shift_count, stats.current_streak, stats.rank) == (30.0, 3, 3, 2)
        assert stats.achievements_earned == 0

    @pytest.mark.asyncio
    async def test_stats_without_activity(self, db_session, board):
        stats = await user_stats(db_session, board["Idle"].id)
        assert (stats.total_points, stats.shift_count, stats.rank) == (0.0, 0, 5)
