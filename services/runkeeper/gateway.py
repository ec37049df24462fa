# services/runkeeper/gateway.py
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from services.shared.db import get_engine
from services.shared.errors import FunctionMissingError, RunRecordError, StoreError

PUBLISH_STEPS = (
    "ingest_start_publish",
    "ingest_publish_logs",
    "ingest_publish_alerts",
    "ingest_publish_rollups",
    "ingest_finish_publish",
)
FINALIZE_PROCEDURE = "finalize_ingest_run"
KNOWN_PROCEDURES = frozenset(PUBLISH_STEPS + (FINALIZE_PROCEDURE,))

# SQLSTATE undefined_function
UNDEFINED_FUNCTION = "42883"
# connection exception, transaction rollback, insufficient resources, operator intervention
TRANSIENT_SQLSTATE_CLASSES = ("08", "40", "53", "57")

RUN_UPDATE_COLUMNS = (
    "status",
    "rows_seen",
    "rows_loaded",
    "rows_rejected",
    "error_summary",
    "finished_at",
)

STAGING_COLUMNS = (
    "ingest_run_id",
    "event_uid",
    "source_file",
    "source_kind",
    "source_row_number",
    "occurred_at",
    "severity",
    "status",
    "source",
    "provider",
    "category",
    "event_code",
    "event_name",
    "actor",
    "resource",
    "ip_address",
    "payload_raw",
    "payload_json",
    "parsed_facts",
    "summary",
    "raw_row",
    "row_hash",
    "title",
    "description",
    "assignee",
    "tactics",
    "affected_entities",
    "recommended_actions",
    "is_alert_candidate",
)
JSONB_COLUMNS = ("payload_json", "parsed_facts", "raw_row")


class IngestGateway(Protocol):
    """Everything the orchestrator needs from the backing store."""

    def create_run(self, source_manifest: List[Dict[str, str]]) -> int: ...

    def update_run(self, run_id: int, fields: Dict[str, Any]) -> None: ...

    def upsert_staging(self, rows: List[Dict[str, Any]]) -> None: ...

    def call_procedure(self, name: str, run_id: int) -> None: ...


def sqlstate_of(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    # psycopg 3 exposes .sqlstate, psycopg2 .pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def classify_db_error(exc: DBAPIError, action: str) -> StoreError:
    """Translate a driver error into the store error taxonomy by SQLSTATE."""
    code = sqlstate_of(exc)
    detail = str(getattr(exc, "orig", None) or exc).strip()

    if code == UNDEFINED_FUNCTION:
        return FunctionMissingError(f"{action}: function not found", sqlstate=code)

    transient = (
        isinstance(exc, (OperationalError, InterfaceError))
        or bool(getattr(exc, "connection_invalidated", False))
        or bool(code and code[:2] in TRANSIENT_SQLSTATE_CLASSES)
    )
    return StoreError(f"{action}: {detail}", transient=transient, sqlstate=code)


def _staging_params(row: Dict[str, Any]) -> Dict[str, Any]:
    params = {column: row.get(column) for column in STAGING_COLUMNS}
    for column in JSONB_COLUMNS:
        if params[column] is not None:
            params[column] = json.dumps(params[column], ensure_ascii=False)
    return params


def _staging_value(column: str) -> str:
    if column in JSONB_COLUMNS:
        return f"CAST(:{column} AS jsonb)"
    if column == "occurred_at":
        return "CAST(:occurred_at AS timestamptz)"
    return f":{column}"


_UPSERT_STAGING_SQL = (
    f"INSERT INTO stg_events ({', '.join(STAGING_COLUMNS)}) "
    f"VALUES ({', '.join(_staging_value(c) for c in STAGING_COLUMNS)}) "
    "ON CONFLICT (ingest_run_id, event_uid) DO NOTHING"
)


class SqlIngestGateway:
    """Postgres-backed gateway (SQLAlchemy Core, text() + bound params)."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    def create_run(self, source_manifest: List[Dict[str, str]]) -> int:
        try:
            with self.engine.begin() as conn:
                run_id = conn.execute(
                    text(
                        """
                        INSERT INTO ingest_runs (status, source_manifest, started_at)
                        VALUES ('running', CAST(:source_manifest AS jsonb), :started_at)
                        RETURNING id
                        """
                    ),
                    {
                        "source_manifest": json.dumps(source_manifest),
                        "started_at": datetime.now(timezone.utc),
                    },
                ).scalar_one()
        except DBAPIError as e:
            raise RunRecordError(f"Unable to create ingest run: {e.orig or e}") from e
        return int(run_id)

    def update_run(self, run_id: int, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - set(RUN_UPDATE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown ingest_runs columns: {sorted(unknown)}")
        if not fields:
            return

        assignments = ", ".join(f"{column} = :{column}" for column in fields)
        try:
            with self.engine.begin() as conn:
                res = conn.execute(
                    text(
                        f"""
                        UPDATE ingest_runs
                        SET {assignments}
                        WHERE id = :run_id
                          AND status NOT IN ('published', 'failed')
                        """
                    ),
                    {**fields, "run_id": run_id},
                )
        except DBAPIError as e:
            raise RunRecordError(f"Unable to update ingest run status: {e.orig or e}") from e

        # terminal runs are immutable
        if not res.rowcount:
            raise RunRecordError(f"Ingest run {run_id} is missing or already terminal")

    def upsert_staging(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            with self.engine.begin() as conn:
                conn.execute(text(_UPSERT_STAGING_SQL), [_staging_params(r) for r in rows])
        except DBAPIError as e:
            raise classify_db_error(e, "stg_events upsert") from e

    def call_procedure(self, name: str, run_id: int) -> None:
        if name not in KNOWN_PROCEDURES:
            raise ValueError(f"Unknown ingest procedure {name!r}")
        try:
            with self.engine.begin() as conn:
                conn.execute(text(f"SELECT {name}(p_run_id => :p_run_id)"), {"p_run_id": run_id})
        except DBAPIError as e:
            raise classify_db_error(e, name) from e
