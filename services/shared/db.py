from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from services.shared.config import settings

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Process-wide engine, created on first use so imports never connect."""
    global _engine
    if _engine is None:
        _engine = create_engine(settings.database_url, pool_pre_ping=True)
    return _engine


def fetch_one(sql: str, **params: Any) -> Optional[Dict[str, Any]]:
    """Run one statement in its own transaction; first row as a dict, or None."""
    with get_engine().begin() as conn:
        row = conn.execute(text(sql), params).mappings().first()
    return dict(row) if row is not None else None


def fetch_all(sql: str, **params: Any) -> List[Dict[str, Any]]:
    with get_engine().begin() as conn:
        rows = conn.execute(text(sql), params).mappings().all()
    return [dict(r) for r in rows]
