"""
Food entry retention tests.

Sizes come from a row-counting stand-in so the trim loop can be driven
deterministically: every row "weighs" one GiB.
"""
from datetime import date, datetime, timezone

import pytest

from api_helpers import ADMIN_HEADERS
from core.clock import civil_today, shift_days
from models import FoodEntry, FoodEntryArchive
from services.retention import BYTES_PER_GB, archive_old_entries, run_retention

TODAY = date(2025, 6, 10)


def _row_count_size(db):
    return (db.query(FoodEntry).count() + db.query(FoodEntryArchive).count()) * BYTES_PER_GB


def _log(db, user_id, entry_date, calories=500):
    db.add(
        FoodEntry(
            user_id=user_id,
            entry_date=entry_date,
            taken_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            food_name="oats",
            calories=calories,
            raw_extraction={"source": "nutrition_label"},
        )
    )
    db.commit()


@pytest.fixture
def mixed_entries(db_session):
    for offset in (-200, -150, -120, -100):
        _log(db_session, "u1", shift_days(TODAY, offset))
    for offset in (-10, -1, 0):
        _log(db_session, "u1", shift_days(TODAY, offset))


class TestArchive:
    def test_old_entries_move_to_archive(self, db_session, mixed_entries):
        moved = archive_old_entries(db_session, shift_days(TODAY, -90))
        db_session.commit()

        assert moved == 4
        assert db_session.query(FoodEntry).count() == 3
        archived = db_session.query(FoodEntryArchive).order_by(FoodEntryArchive.entry_date).all()
        assert [a.entry_date for a in archived] == [shift_days(TODAY, o) for o in (-200, -150, -120, -100)]
        assert archived[0].food_name == "oats"
        assert archived[0].raw_extraction == {"source": "nutrition_label"}

    def test_archive_keeps_original_ids(self, db_session, mixed_entries):
        old_ids = {e.id for e in db_session.query(FoodEntry).filter(FoodEntry.entry_date < shift_days(TODAY, -90))}
        archive_old_entries(db_session, shift_days(TODAY, -90))
        db_session.commit()
        assert {a.id for a in db_session.query(FoodEntryArchive)} == old_ids

    def test_cutoff_day_itself_stays_hot(self, db_session):
        _log(db_session, "u1", shift_days(TODAY, -90))
        assert archive_old_entries(db_session, shift_days(TODAY, -90)) == 0


class TestRunRetention:
    def test_under_budget_only_archives(self, db_session, mixed_entries):
        result = run_retention(db_session, keep_days=90, max_db_size_gb=100, today=TODAY, measure_size=_row_count_size)
        assert result["archived"] == 4
        assert result["trimmed_archive"] == 0
        assert result["trimmed_hot"] == 0
        assert result["trim_passes"] == 0
        assert result["db_size_bytes_before"] == 7 * BYTES_PER_GB

    def test_trim_deletes_archive_rows_first(self, db_session, mixed_entries):
        result = run_retention(
            db_session, keep_days=90, max_db_size_gb=3, trim_batch_size=2, today=TODAY, measure_size=_row_count_size
        )
        assert result["trimmed_archive"] == 4
        assert result["trimmed_hot"] == 0
        assert result["trim_passes"] == 2
        assert result["db_size_bytes_after"] == 3 * BYTES_PER_GB
        assert db_session.query(FoodEntry).count() == 3

    def test_trim_reaches_hot_rows_once_archive_is_empty(self, db_session, mixed_entries):
        result = run_retention(
            db_session, keep_days=90, max_db_size_gb=1, trim_batch_size=2, today=TODAY, measure_size=_row_count_size
        )
        assert result["trimmed_archive"] == 4
        assert result["trimmed_hot"] == 2
        remaining = db_session.query(FoodEntry).one()
        assert remaining.entry_date == TODAY

    def test_pass_limit_bounds_the_loop(self, db_session, mixed_entries):
        result = run_retention(
            db_session,
            keep_days=90,
            max_db_size_gb=1,
            trim_batch_size=1,
            trim_pass_limit=2,
            today=TODAY,
            measure_size=_row_count_size,
        )
        assert result["trim_passes"] == 2
        assert result["trimmed_archive"] == 2
        assert result["db_size_bytes_after"] == 5 * BYTES_PER_GB

    def test_keep_days_is_clamped(self, db_session):
        result = run_retention(db_session, keep_days=99999, max_db_size_gb=100, today=TODAY, measure_size=_row_count_size)
        assert result["keep_days"] == 3650


class TestRetentionEndpoint:
    def test_requires_admin_token(self, client):
        assert client.post("/v1/admin/retention/run").status_code == 401

    def test_runs_with_overrides(self, client, db_session):
        _log(db_session, "u1", shift_days(civil_today(), -100))
        _log(db_session, "u1", civil_today())

        resp = client.post(
            "/v1/admin/retention/run",
            json={"keep_days": 30, "max_db_size_gb": 10},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["ok"] is True
        assert body["keep_days"] == 30
        assert body["archived"] == 1
        assert db_session.query(FoodEntryArchive).count() == 1

    def test_rejects_out_of_range_overrides(self, client, db_session):
        resp = client.post("/v1/admin/retention/run", json={"keep_days": 0}, headers=ADMIN_HEADERS)
        assert resp.status_code == 422
