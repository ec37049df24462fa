# tests/test_sql_gateway.py
import json
from contextlib import contextmanager

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError, ProgrammingError

from services.runkeeper.gateway import SqlIngestGateway, classify_db_error
from services.shared.errors import FunctionMissingError, RunRecordError, StoreError


class DriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def db_error(cls, message, sqlstate=None):
    return cls("SELECT 1", {}, DriverError(message, sqlstate))


class FakeResult:
    def __init__(self, rowcount=1, scalar=None):
        self.rowcount = rowcount
        self._scalar = scalar

    def scalar_one(self):
        return self._scalar


class FakeConnection:
    def __init__(self, engine):
        self.engine = engine

    def execute(self, statement, params=None):
        self.engine.executed.append((str(statement), params))
        if self.engine.error is not None:
            raise self.engine.error
        return self.engine.result


class FakeEngine:
    def __init__(self, result=None, error=None):
        self.result = result or FakeResult()
        self.error = error
        self.executed = []

    @contextmanager
    def begin(self):
        yield FakeConnection(self)


def test_undefined_function_is_typed():
    err = classify_db_error(
        db_error(ProgrammingError, "function ingest_start_publish(bigint) does not exist", "42883"),
        "ingest_start_publish",
    )
    assert isinstance(err, FunctionMissingError)


def test_missing_function_text_without_code_is_not_fallback():
    err = classify_db_error(
        db_error(ProgrammingError, "could not find the function ingest_start_publish"),
        "ingest_start_publish",
    )
    assert not isinstance(err, FunctionMissingError)
    assert err.transient is False


@pytest.mark.parametrize(
    "cls, sqlstate, transient",
    [
        (OperationalError, None, True),
        (DBAPIError, "40001", True),
        (DBAPIError, "57014", True),
        (DBAPIError, "08006", True),
        (DBAPIError, "23505", False),
        (ProgrammingError, "42P01", False),
    ],
)
def test_transient_classification(cls, sqlstate, transient):
    err = classify_db_error(db_error(cls, "boom", sqlstate), "stg_events upsert")
    assert isinstance(err, StoreError)
    assert err.transient is transient
    assert err.sqlstate == sqlstate
    assert str(err) == "stg_events upsert: boom"


def test_create_run_returns_id():
    engine = FakeEngine(result=FakeResult(scalar=17))
    run_id = SqlIngestGateway(engine).create_run([{"file": "Alert.csv", "kind": "security_event"}])
    assert run_id == 17
    sql, params = engine.executed[0]
    assert "INSERT INTO ingest_runs" in sql
    assert json.loads(params["source_manifest"]) == [{"file": "Alert.csv", "kind": "security_event"}]


def test_create_run_failure_is_structural():
    engine = FakeEngine(error=db_error(OperationalError, "connection refused"))
    with pytest.raises(RunRecordError):
        SqlIngestGateway(engine).create_run([])


def test_update_run_rejects_unknown_columns():
    with pytest.raises(ValueError):
        SqlIngestGateway(FakeEngine()).update_run(1, {"status": "loaded", "id": 5})


def test_update_run_refuses_terminal_rows():
    engine = FakeEngine(result=FakeResult(rowcount=0))
    with pytest.raises(RunRecordError):
        SqlIngestGateway(engine).update_run(1, {"status": "failed"})
    sql, params = engine.executed[0]
    assert "status NOT IN ('published', 'failed')" in sql
    assert params == {"status": "failed", "run_id": 1}


def test_upsert_staging_ignores_duplicates_and_encodes_json():
    engine = FakeEngine()
    SqlIngestGateway(engine).upsert_staging([
        {"ingest_run_id": 1, "event_uid": "firewall-x", "payload_json": {"a": 1},
         "parsed_facts": {"kind": "firewall"}, "raw_row": {"k": "v"}},
    ])
    sql, params = engine.executed[0]
    assert "ON CONFLICT (ingest_run_id, event_uid) DO NOTHING" in sql
    assert "CAST(:payload_json AS jsonb)" in sql
    assert params[0]["payload_json"] == '{"a": 1}'
    assert params[0]["actor"] is None


def test_upsert_staging_skips_empty_batch():
    engine = FakeEngine()
    SqlIngestGateway(engine).upsert_staging([])
    assert engine.executed == []


def test_call_procedure_uses_named_argument():
    engine = FakeEngine()
    SqlIngestGateway(engine).call_procedure("ingest_publish_logs", 9)
    sql, params = engine.executed[0]
    assert sql == "SELECT ingest_publish_logs(p_run_id => :p_run_id)"
    assert params == {"p_run_id": 9}


def test_call_procedure_rejects_unknown_names():
    with pytest.raises(ValueError):
        SqlIngestGateway(FakeEngine()).call_procedure("drop_everything", 1)


def test_call_procedure_maps_missing_function():
    engine = FakeEngine(error=db_error(ProgrammingError, "function does not exist", "42883"))
    with pytest.raises(FunctionMissingError):
        SqlIngestGateway(engine).call_procedure("ingest_start_publish", 1)
