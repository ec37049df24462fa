"""
Drives one ingest run end to end.

create run -> read each source file -> classify and stage rows in batches
-> mark loaded -> publish -> mark published. Any fatal error (including an
operator interrupt) leaves the run marked failed before it propagates.
Committed staging batches are never rolled back; they are inert until a
later run publishes them.
"""
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from tenacity import RetryCallState, RetryError, Retrying, stop_after_attempt, wait_incrementing

from services.runkeeper.gateway import IngestGateway
from services.runkeeper.publisher import Publisher
from services.runkeeper.sources import SourceFile, load_manifest, read_rows
from services.runkeeper.state import RunState, RunStatus
from services.shared.config import settings
from services.shared.errors import RowRejected, StagingWriteError
from services.shared.logging import run_logger
from services.stagehouse.builder import build_staging_record, to_row


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IngestOrchestrator:
    def __init__(
        self,
        gateway: IngestGateway,
        sources: Optional[Sequence[SourceFile]] = None,
        data_dir: Optional[str] = None,
        batch_size: Optional[int] = None,
        batch_attempts: Optional[int] = None,
        batch_backoff_seconds: Optional[float] = None,
        publisher: Optional[Publisher] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.sources = list(sources) if sources is not None else load_manifest(
            settings.source_list, settings.default_sources
        )
        self.data_dir = Path(data_dir if data_dir is not None else settings.data_dir)
        self.batch_size = batch_size or settings.batch_size
        self.batch_attempts = batch_attempts or settings.batch_attempts
        self.batch_backoff_seconds = (
            batch_backoff_seconds
            if batch_backoff_seconds is not None
            else settings.batch_backoff_seconds
        )
        self.sleep = sleep
        self.publisher = publisher or Publisher(gateway, sleep=sleep)

        self.state = RunState()
        self.log = run_logger(__name__, None)
        self._buffer: List[Dict[str, Any]] = []

    # -------------------------------------------------------------------------
    # lifecycle
    # -------------------------------------------------------------------------

    def run(self) -> RunState:
        self.start_run()
        try:
            self.ingest_files()
            self.mark_loaded()
            self.state.publish_mode = self.publisher.publish(self.state.run_id)
            self.mark_published()
        except (Exception, KeyboardInterrupt) as exc:
            self.fail(exc)
            raise
        return self.state

    def start_run(self) -> int:
        manifest = [{"file": s.name, "kind": s.kind.value} for s in self.sources]
        run_id = self.gateway.create_run(manifest)
        self.state.run_id = run_id
        self.state.transition(RunStatus.RUNNING)
        self.log = run_logger(__name__, run_id)
        self.log.info("Ingest run started with %d source file(s)", len(manifest))
        return run_id

    def mark_loaded(self) -> None:
        self.gateway.update_run(
            self.state.run_id,
            {
                "status": RunStatus.LOADED.value,
                **self.state.counters(),
                "error_summary": self.state.rejection_summary(),
            },
        )
        self.state.transition(RunStatus.LOADED)
        self.log.info(
            "Loaded: seen=%d loaded=%d rejected=%d",
            self.state.rows_seen,
            self.state.rows_loaded,
            self.state.rows_rejected,
        )

    def mark_published(self) -> None:
        self.gateway.update_run(
            self.state.run_id,
            {"status": RunStatus.PUBLISHED.value, "finished_at": _now()},
        )
        self.state.transition(RunStatus.PUBLISHED)
        self.log.info("Published via %s procedures", self.state.publish_mode)

    def fail(self, exc: BaseException) -> None:
        message = str(exc) or type(exc).__name__
        summary = " | ".join(p for p in (self.state.rejection_summary(), message) if p)
        self.state.error = summary
        self.log.exception("Ingest run failed: %s", message)
        if self.state.run_id is None or self.state.terminal:
            return
        try:
            self.gateway.update_run(
                self.state.run_id,
                {
                    "status": RunStatus.FAILED.value,
                    **self.state.counters(),
                    "error_summary": summary,
                    "finished_at": _now(),
                },
            )
        except Exception:
            self.log.exception("Could not mark ingest run as failed")
        self.state.transition(RunStatus.FAILED)

    # -------------------------------------------------------------------------
    # load
    # -------------------------------------------------------------------------

    def ingest_files(self) -> None:
        for source in self.sources:
            path = self.data_dir / source.name
            if not path.is_file():
                self.log.warning("Source file %s not found; skipping", source.name)
                self.state.reject(f"missing_file:{source.name}")
                continue
            self.ingest_file(path, source)

    def ingest_file(self, path: Path, source: SourceFile) -> None:
        def _malformed(fields):
            self.log.debug("%s: malformed line with %d fields", source.name, len(fields))
            self.state.rows_seen += 1
            self.state.reject("malformed_row")

        row_number = 0
        for row in read_rows(path, chunk_size=self.batch_size, on_bad_line=_malformed):
            row_number += 1
            self.state.rows_seen += 1
            try:
                record = build_staging_record(
                    row, source.kind, source.name, row_number, run_id=self.state.run_id
                )
            except RowRejected as e:
                self.log.debug("%s row %d rejected: %s", source.name, row_number, e.reason)
                self.state.reject(e.reason)
                continue
            except Exception:
                self.log.warning("%s row %d could not be staged", source.name, row_number, exc_info=True)
                self.state.reject("row_error")
                continue

            self._buffer.append(to_row(record))
            if len(self._buffer) >= self.batch_size:
                self.flush()
        self.flush()
        self.log.info("Finished %s (%s)", source.name, source.kind.value)

    def flush(self) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        self.write_batch(batch)
        self.state.rows_loaded += len(batch)

    def write_batch(self, batch: List[Dict[str, Any]]) -> None:
        """Upsert one batch; attempt n waits n x backoff before the next."""
        def _before_sleep(state: RetryCallState) -> None:
            self.log.warning(
                "Staging batch attempt %d/%d failed: %s",
                state.attempt_number,
                self.batch_attempts,
                state.outcome.exception(),
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.batch_attempts),
            wait=wait_incrementing(
                start=self.batch_backoff_seconds, increment=self.batch_backoff_seconds
            ),
            sleep=self.sleep,
            before_sleep=_before_sleep,
        )
        try:
            retrying(self.gateway.upsert_staging, batch)
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise StagingWriteError(f"Failed to write staging batch: {cause}") from cause
