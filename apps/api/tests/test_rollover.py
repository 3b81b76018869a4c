from datetime import date, datetime, timezone

import pytest

from models import FoodEntry
from services.rollover import clamp_rollover_cap, compute_rollover, day_calorie_total, rollover_delta

TODAY = date(2025, 6, 10)
YESTERDAY = date(2025, 6, 9)


def _log(db, user_id, entry_date, *calories):
    for c in calories:
        db.add(FoodEntry(user_id=user_id, entry_date=entry_date, taken_at=datetime.now(timezone.utc), calories=c))
    db.commit()


@pytest.mark.parametrize(
    "base,prior,cap,expected",
    [
        (2000, 2600, 500, -500),
        (2000, 1800, 500, 200),
        (2000, 2000, 500, 0),
        (2000, 0, 500, 500),
        (2000, 1000, 0, 0),
        (2000, None, 500, 0),
    ],
)
def test_rollover_delta(base, prior, cap, expected):
    assert rollover_delta(base, prior, cap) == expected


@pytest.mark.parametrize("raw,expected", [(-5, 0), (2500, 2000), (350.6, 351), ("abc", 500), (None, 500)])
def test_clamp_rollover_cap(raw, expected):
    assert clamp_rollover_cap(raw) == expected


class TestComputeRollover:
    def test_overeating_yesterday_lowers_today(self, db_session):
        _log(db_session, "u1", YESTERDAY, 1600, 1000)
        ro = compute_rollover(db_session, "u1", TODAY, 2000, enabled=True, cap=500)
        assert ro.delta == -500
        assert ro.effective_goal == 1500

    def test_undereating_yesterday_raises_today(self, db_session):
        _log(db_session, "u1", YESTERDAY, 1800)
        ro = compute_rollover(db_session, "u1", TODAY, 2000, enabled=True, cap=500)
        assert ro.delta == 200
        assert ro.effective_goal == 2200

    def test_no_entries_yesterday_is_no_data(self, db_session):
        _log(db_session, "u1", TODAY, 900)
        assert day_calorie_total(db_session, "u1", YESTERDAY) is None
        ro = compute_rollover(db_session, "u1", TODAY, 2000, enabled=True, cap=500)
        assert ro.delta == 0
        assert ro.effective_goal == 2000

    def test_disabled_returns_base_goal(self, db_session):
        _log(db_session, "u1", YESTERDAY, 500)
        ro = compute_rollover(db_session, "u1", TODAY, 2000, enabled=False, cap=500)
        assert (ro.enabled, ro.delta, ro.effective_goal) == (False, 0, 2000)

    def test_without_goal(self, db_session):
        _log(db_session, "u1", YESTERDAY, 500)
        ro = compute_rollover(db_session, "u1", TODAY, None, enabled=True, cap=500)
        assert ro.delta == 0
        assert ro.effective_goal is None
