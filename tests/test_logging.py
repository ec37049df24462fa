# tests/test_logging.py
import logging

from services.shared.logging import RunIdFilter, run_logger, setup_logging


def test_run_logger_stamps_run_id(caplog):
    run_logger("sentryloom.test", 7).warning("hello")
    assert caplog.records[-1].run_id == 7
    assert caplog.records[-1].getMessage() == "hello"


def test_run_logger_without_run(caplog):
    run_logger("sentryloom.test", None).warning("before start")
    assert caplog.records[-1].run_id == "-"


def test_setup_logging_fills_in_missing_run_id(caplog):
    setup_logging()
    handlers = logging.getLogger().handlers
    assert handlers
    assert all(any(isinstance(f, RunIdFilter) for f in h.filters) for h in handlers)

    logging.getLogger("sentryloom.plain").warning("no run here")
    record = caplog.records[-1]
    assert record.run_id == "-"
    formatter = logging.Formatter("run=%(run_id)s %(message)s")
    assert formatter.format(record) == "run=- no run here"

    # a second call does not stack filters
    setup_logging()
    assert all(sum(isinstance(f, RunIdFilter) for f in h.filters) == 1 for h in handlers)
