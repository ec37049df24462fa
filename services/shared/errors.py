from typing import Optional


class IngestError(Exception):
    pass


class RowRejected(IngestError):
    """A single row failed the acceptance gate. Counted, never fatal."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RunRecordError(IngestError):
    """The ingest_runs row could not be created or updated."""


class StoreError(IngestError):
    """A staging write or stored-procedure call failed in the database."""

    def __init__(self, message: str, *, transient: bool = False, sqlstate: Optional[str] = None):
        super().__init__(message)
        self.transient = transient
        self.sqlstate = sqlstate


class FunctionMissingError(StoreError):
    """The called procedure is not deployed (undefined_function)."""


class StagingWriteError(IngestError):
    pass


class PublishError(IngestError):
    def __init__(self, step: str, message: str):
        super().__init__(f"{step} failed: {message}")
        self.step = step
