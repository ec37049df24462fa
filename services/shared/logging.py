import logging

from services.shared.config import settings


class RunIdFilter(logging.Filter):
    """Gives records logged outside an ingest run a placeholder run id."""

    def filter(self, record):
        if not hasattr(record, "run_id"):
            record.run_id = "-"
        return True


class RunAdapter(logging.LoggerAdapter):
    """Stamps every record with the ingest run it belongs to."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra.setdefault("run_id", self.extra.get("run_id", "-"))
        return msg, kwargs


def run_logger(name: str, run_id) -> RunAdapter:
    return RunAdapter(logging.getLogger(name), {"run_id": run_id if run_id is not None else "-"})


def setup_logging():
    level = settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s run=%(run_id)s %(name)s - %(message)s"
    )
    # run_id comes in through `extra`, so it cannot be pre-set on the record
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RunIdFilter) for f in handler.filters):
            handler.addFilter(RunIdFilter())
