from dataclasses import dataclass, field
import os


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


# (file name, source kind) pairs shipped by the SIEM export
DEFAULT_SOURCES = (
    ("Alert.csv", "security_event"),
    ("Sec Event.csv", "security_event"),
    ("AzurActivity.csv", "activity"),
    ("FierWall.csv", "firewall"),
    ("Incedent.csv", "incident"),
)


@dataclass(frozen=True)
class Settings:
    # Database
    database_url: str = os.getenv(
        "DATABASE_URL", "postgresql+psycopg://postgres@localhost:5432/sentryloom"
    )

    # Ingestion inputs
    data_dir: str = os.getenv("INGEST_DATA_DIR", ".")
    source_list: str = os.getenv("INGEST_SOURCES", "")
    default_sources: tuple = field(default=DEFAULT_SOURCES)

    # Staging writes
    batch_size: int = _env_int("INGEST_BATCH_SIZE", 250)
    batch_attempts: int = _env_int("INGEST_BATCH_ATTEMPTS", 4)
    batch_backoff_seconds: float = _env_float("INGEST_BATCH_BACKOFF_SECONDS", 0.25)

    # Publish procedures (first try + retries)
    publish_attempts: int = _env_int("INGEST_PUBLISH_ATTEMPTS", 3)
    publish_backoff_seconds: float = _env_float("INGEST_PUBLISH_BACKOFF_SECONDS", 0.5)

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
