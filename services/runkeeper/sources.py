from pathlib import Path
from typing import Callable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import pandas as pd

from services.rowsense.classifier import normalize_row
from services.rowsense.schemas import SourceKind


class SourceFile(NamedTuple):
    name: str
    kind: SourceKind


def load_manifest(listing: str, default: Sequence[Tuple[str, str]] = ()) -> List[SourceFile]:
    """
    'Alert.csv:security_event,FierWall.csv:firewall' -> [SourceFile, ...].
    An empty listing yields the default manifest.
    """
    entries = [e.strip() for e in (listing or "").split(",") if e.strip()]
    if not entries:
        return [SourceFile(name, SourceKind(kind)) for name, kind in default]

    manifest = []
    for entry in entries:
        name, sep, kind = entry.rpartition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid source entry {entry!r}, expected 'file:kind'")
        manifest.append(SourceFile(name.strip(), SourceKind(kind.strip())))
    return manifest


def read_rows(
    path: Path,
    chunk_size: int = 250,
    on_bad_line: Optional[Callable[[List[str]], None]] = None,
) -> Iterator[dict]:
    """Stream normalized rows of one CSV export; every cell is read as text."""
    def _bad_line(fields: List[str]):
        if on_bad_line is not None:
            on_bad_line(fields)
        return None

    try:
        reader = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            encoding_errors="replace",
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=_bad_line,
            chunksize=chunk_size,
        )
    except pd.errors.EmptyDataError:
        return

    with reader:
        for chunk in reader:
            for record in chunk.to_dict(orient="records"):
                yield normalize_row(record)
