import argparse
import logging
import sys

from services.runkeeper.gateway import SqlIngestGateway
from services.runkeeper.orchestrator import IngestOrchestrator
from services.runkeeper.sources import load_manifest
from services.shared.config import settings
from services.shared.errors import IngestError
from services.shared.logging import setup_logging

log = logging.getLogger("ingest_worker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ingest_worker",
        description="Load SIEM CSV exports into staging and publish them",
    )
    parser.add_argument("--data-dir", type=str, default=settings.data_dir,
                        help="Directory holding the CSV exports")
    parser.add_argument("--batch-size", type=int, default=settings.batch_size,
                        help="Rows per staging upsert")
    parser.add_argument("--source", action="append", default=[], metavar="FILE:KIND",
                        help="Source file and kind; repeat for several (default: INGEST_SOURCES)")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    listing = ",".join(args.source) if args.source else settings.source_list
    try:
        sources = load_manifest(listing, settings.default_sources)
    except ValueError as e:
        log.error("Invalid source list: %s", e)
        return 2

    orchestrator = IngestOrchestrator(
        SqlIngestGateway(),
        sources=sources,
        data_dir=args.data_dir,
        batch_size=args.batch_size,
    )
    try:
        state = orchestrator.run()
    except IngestError:
        log.error("Ingest run %s failed: %s", orchestrator.state.run_id, orchestrator.state.error)
        return 1

    log.info(
        "Ingest run %s %s: seen=%d loaded=%d rejected=%d",
        state.run_id,
        state.status.value,
        state.rows_seen,
        state.rows_loaded,
        state.rows_rejected,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
