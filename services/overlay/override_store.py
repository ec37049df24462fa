# services/overlay/override_store.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.shared.db import fetch_all, fetch_one

ALERT_COLUMNS = """
    a.id, a.event_uid, a.ingest_run_id, a.title, a.severity, a.status, a.source,
    a."timestamp", a.description, a.assignee, a.tactics, a.affected_entities,
    a.recommended_actions, a.payload_raw, a.parsed_facts
"""
OVERRIDE_COLUMNS = "alert_id, status, assignee, updated_at, updated_by"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def upsert_override(
    alert_id: int,
    status: Optional[str],
    assignee: Optional[str],
    updated_by: Optional[str],
) -> Dict[str, Any]:
    """Last write wins per alert; a field left as None keeps its stored value."""
    return fetch_one(
        f"""
        INSERT INTO alert_overrides({OVERRIDE_COLUMNS})
        VALUES (:alert_id, :status, :assignee, :updated_at, :updated_by)
        ON CONFLICT (alert_id) DO UPDATE SET
            status = COALESCE(EXCLUDED.status, alert_overrides.status),
            assignee = COALESCE(EXCLUDED.assignee, alert_overrides.assignee),
            updated_at = EXCLUDED.updated_at,
            updated_by = EXCLUDED.updated_by
        RETURNING {OVERRIDE_COLUMNS}
        """,
        alert_id=alert_id,
        status=status,
        assignee=assignee,
        updated_at=now_utc(),
        updated_by=updated_by,
    )


def get_override(alert_id: int) -> Optional[Dict[str, Any]]:
    return fetch_one(
        f"SELECT {OVERRIDE_COLUMNS} FROM alert_overrides WHERE alert_id = :alert_id",
        alert_id=alert_id,
    )


def get_overrides(alert_ids: List[int]) -> Dict[int, Dict[str, Any]]:
    if not alert_ids:
        return {}
    rows = fetch_all(
        f"SELECT {OVERRIDE_COLUMNS} FROM alert_overrides WHERE alert_id = ANY(:alert_ids)",
        alert_ids=list(alert_ids),
    )
    return {r["alert_id"]: r for r in rows}


def get_alert(alert_id: int) -> Optional[Dict[str, Any]]:
    return fetch_one(
        f"SELECT {ALERT_COLUMNS} FROM alerts a WHERE a.id = :alert_id",
        alert_id=alert_id,
    )


def list_alerts(limit: int = 100) -> List[Dict[str, Any]]:
    return fetch_all(
        f'SELECT {ALERT_COLUMNS} FROM alerts a ORDER BY a."timestamp" DESC LIMIT :limit',
        limit=limit,
    )


def get_run(run_id: int) -> Optional[Dict[str, Any]]:
    return fetch_one(
        """
        SELECT id, status, source_manifest, rows_seen, rows_loaded, rows_rejected,
               error_summary, started_at, finished_at
        FROM ingest_runs WHERE id = :run_id
        """,
        run_id=run_id,
    )
