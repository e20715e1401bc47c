from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

import pytest

from houseplan.fallback import build_fallback_plan
from houseplan.plan_generator import AIEnhancedData, generate_house_plan
from houseplan.storage import (
    completed_steps,
    delete_plan,
    get_plan,
    get_plans,
    get_progress,
    save_plan,
    save_progress,
)

NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    return tmp_path / "plans.db"


def test_save_and_reload_plan(db) -> None:
    plan = generate_house_plan(2_500_000, now=NOW).with_location("Nyeri")
    row_id = save_plan(plan, db_path=db)

    assert get_plan(row_id, db_path=db) == plan
    assert get_plan(row_id + 100, db_path=db) is None


def test_enhanced_plan_survives_storage(db) -> None:
    plan = generate_house_plan(1_000_000, now=NOW).with_enhancement(
        AIEnhancedData("use stone", "buy in bulk", "clay", "7 months", ("prompt",))
    )
    loaded = get_plan(save_plan(plan, db_path=db), db_path=db)

    assert loaded.ai_enhanced == plan.ai_enhanced


def test_fallback_source_is_kept(db) -> None:
    plan = build_fallback_plan(3_000_000, "Nakuru", reason="Missing GOOGLE_API_KEY", now=NOW)
    loaded = get_plan(save_plan(plan, db_path=db), db_path=db)

    assert loaded.source == "fallback"
    assert loaded.cost_breakdown == plan.cost_breakdown


def test_get_plans_newest_first(db) -> None:
    first = save_plan(generate_house_plan(600_000, now=NOW), db_path=db)
    second = save_plan(generate_house_plan(9_000_000, now=NOW), db_path=db)

    rows = get_plans(db_path=db)
    assert [r["id"] for r in rows] == [second, first]
    assert isinstance(rows[0]["cost_breakdown"], dict)
    assert isinstance(rows[0]["notes"], list)
    assert rows[0]["ai_enhanced"] is None
    assert len(get_plans(limit=1, db_path=db)) == 1


def test_progress_upsert(db) -> None:
    row_id = save_plan(generate_house_plan(1_500_000, now=NOW), db_path=db)

    save_progress(row_id, "land", "Land Acquisition & Title Deed", True, db_path=db)
    save_progress(row_id, "design", "Architectural Design & Approvals", True, db_path=db)
    save_progress(row_id, "design", "Architectural Design & Approvals", False, notes="redo", db_path=db)

    rows = get_progress(row_id, db_path=db)
    assert len(rows) == 2
    design = next(r for r in rows if r["step_id"] == "design")
    assert design["completed"] is False
    assert design["completed_at"] is None
    assert design["notes"] == "redo"
    assert completed_steps(row_id, db_path=db) == {"land": True, "design": False}


def test_delete_plan_removes_progress(db) -> None:
    row_id = save_plan(generate_house_plan(1_500_000, now=NOW), db_path=db)
    save_progress(row_id, "land", "Land Acquisition & Title Deed", True, db_path=db)

    assert delete_plan(row_id, db_path=db) is True
    assert get_plan(row_id, db_path=db) is None
    assert get_progress(row_id, db_path=db) == []
    assert delete_plan(row_id, db_path=db) is False


def test_connections_are_closed_after_each_call(db, monkeypatch) -> None:
    opened = []
    connect = sqlite3.connect

    def tracking_connect(*args, **kwargs):
        conn = connect(*args, **kwargs)
        opened.append(conn)
        return conn

    monkeypatch.setattr(sqlite3, "connect", tracking_connect)
    row_id = save_plan(generate_house_plan(1_500_000, now=NOW), db_path=db)
    save_progress(row_id, "land", "Land Acquisition & Title Deed", True, db_path=db)
    get_plans(db_path=db)
    delete_plan(row_id, db_path=db)

    assert opened
    for conn in opened:
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")
