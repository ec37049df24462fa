from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable, Optional


def canon_json(obj: Any) -> str:
    """Sorted keys, no whitespace, non-JSON values (datetimes) as str."""
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


def _digest(material: str) -> str:
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def stable_hash(parts: Iterable[Optional[Any]]) -> str:
    """sha256 over the parts joined with '|' (None renders as empty)."""
    return _digest("|".join("" if p is None else str(p) for p in parts))


def row_hash(row: dict) -> str:
    """Audit fingerprint of a raw CSV row. Not used for deduplication."""
    return _digest(canon_json(row))
