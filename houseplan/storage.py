from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import DEFAULT_DB
from .plan_generator import HousePlan


logger = logging.getLogger(__name__)


def _get_conn(db_path: Path = DEFAULT_DB) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db(db_path: Path = DEFAULT_DB) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with closing(_get_conn(db_path)) as conn, conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS house_plans (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              plan_key TEXT NOT NULL,
              budget INTEGER NOT NULL,
              house_type TEXT NOT NULL,
              style TEXT NOT NULL,
              size INTEGER NOT NULL,
              plot_size INTEGER NOT NULL,
              bedrooms INTEGER NOT NULL,
              roofing TEXT NOT NULL,
              interior_finish TEXT NOT NULL,
              cost_breakdown TEXT NOT NULL,
              timeline TEXT NOT NULL,
              notes TEXT NOT NULL,
              ai_prompts TEXT NOT NULL,
              location TEXT,
              ai_enhanced TEXT,
              source TEXT NOT NULL,
              created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS planning_progress (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              plan_id INTEGER NOT NULL,
              step_id TEXT NOT NULL,
              step_name TEXT NOT NULL,
              completed INTEGER NOT NULL DEFAULT 0,
              notes TEXT,
              completed_at TEXT,
              created_at TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              UNIQUE (plan_id, step_id),
              FOREIGN KEY (plan_id) REFERENCES house_plans(id)
            );
            """
        )


def save_plan(plan: HousePlan, db_path: Path = DEFAULT_DB) -> int:
    init_db(db_path)
    data = plan.to_dict()

    with closing(_get_conn(db_path)) as conn, conn:
        cur = conn.execute(
            """
            INSERT INTO house_plans (
              plan_key, budget, house_type, style, size, plot_size, bedrooms,
              roofing, interior_finish, cost_breakdown, timeline, notes, ai_prompts,
              location, ai_enhanced, source, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                plan.id,
                int(plan.budget),
                plan.house_type,
                plan.style,
                int(plan.size),
                int(plan.plot_size),
                int(plan.bedrooms),
                plan.roofing,
                plan.interior_finish,
                json.dumps(data["costBreakdown"]),
                plan.timeline,
                json.dumps(data["notes"], ensure_ascii=False),
                json.dumps(data["aiPrompts"], ensure_ascii=False),
                plan.location,
                json.dumps(data["aiEnhanced"], ensure_ascii=False) if plan.ai_enhanced else None,
                plan.source,
                _now(),
            ),
        )
        row_id = int(cur.lastrowid)
    logger.info("Saved plan %s as row %s", plan.id, row_id)
    return row_id


def _row_to_plan(row: sqlite3.Row) -> HousePlan:
    return HousePlan.from_dict(
        {
            "id": row["plan_key"],
            "budget": row["budget"],
            "houseType": row["house_type"],
            "style": row["style"],
            "size": row["size"],
            "plotSize": row["plot_size"],
            "bedrooms": row["bedrooms"],
            "roofing": row["roofing"],
            "interiorFinish": row["interior_finish"],
            "costBreakdown": json.loads(row["cost_breakdown"]),
            "timeline": row["timeline"],
            "notes": json.loads(row["notes"]),
            "aiPrompts": json.loads(row["ai_prompts"]),
            "location": row["location"],
            "aiEnhanced": json.loads(row["ai_enhanced"]) if row["ai_enhanced"] else None,
            "source": row["source"],
        }
    )


def get_plans(limit: int = 25, db_path: Path = DEFAULT_DB) -> List[Dict[str, Any]]:
    """Newest first, as plain rows with the JSON columns decoded."""
    init_db(db_path)
    with closing(_get_conn(db_path)) as conn, conn:
        rows = conn.execute(
            "SELECT * FROM house_plans ORDER BY datetime(created_at) DESC, id DESC LIMIT ?",
            (int(limit),),
        ).fetchall()

    out = []
    for r in rows:
        d = dict(r)
        for col in ("cost_breakdown", "notes", "ai_prompts"):
            d[col] = json.loads(d[col])
        d["ai_enhanced"] = json.loads(d["ai_enhanced"]) if d["ai_enhanced"] else None
        out.append(d)
    return out


def get_plan(row_id: int, db_path: Path = DEFAULT_DB) -> Optional[HousePlan]:
    init_db(db_path)
    with closing(_get_conn(db_path)) as conn, conn:
        row = conn.execute("SELECT * FROM house_plans WHERE id = ?", (int(row_id),)).fetchone()
    return _row_to_plan(row) if row else None


def delete_plan(row_id: int, db_path: Path = DEFAULT_DB) -> bool:
    init_db(db_path)
    with closing(_get_conn(db_path)) as conn, conn:
        conn.execute("DELETE FROM planning_progress WHERE plan_id = ?", (int(row_id),))
        cur = conn.execute("DELETE FROM house_plans WHERE id = ?", (int(row_id),))
        deleted = cur.rowcount > 0
    if deleted:
        logger.info("Deleted plan row %s", row_id)
    return deleted


def save_progress(
    plan_id: int,
    step_id: str,
    step_name: str,
    completed: bool,
    notes: Optional[str] = None,
    db_path: Path = DEFAULT_DB,
) -> None:
    """Insert or update the progress row for (plan_id, step_id)."""
    init_db(db_path)
    now = _now()
    with closing(_get_conn(db_path)) as conn, conn:
        conn.execute(
            """
            INSERT INTO planning_progress (
              plan_id, step_id, step_name, completed, notes, completed_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (plan_id, step_id) DO UPDATE SET
              step_name = excluded.step_name,
              completed = excluded.completed,
              notes = excluded.notes,
              completed_at = excluded.completed_at,
              updated_at = excluded.updated_at
            """,
            (
                int(plan_id),
                step_id,
                step_name,
                int(bool(completed)),
                notes,
                now if completed else None,
                now,
                now,
            ),
        )


def get_progress(plan_id: int, db_path: Path = DEFAULT_DB) -> List[Dict[str, Any]]:
    init_db(db_path)
    with closing(_get_conn(db_path)) as conn, conn:
        rows = conn.execute(
            "SELECT * FROM planning_progress WHERE plan_id = ? ORDER BY created_at, id",
            (int(plan_id),),
        ).fetchall()

    out = [dict(r) for r in rows]
    for d in out:
        d["completed"] = bool(d["completed"])
    return out


def completed_steps(plan_id: int, db_path: Path = DEFAULT_DB) -> Dict[str, bool]:
    return {row["step_id"]: row["completed"] for row in get_progress(plan_id, db_path)}
