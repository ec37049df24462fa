import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

import pandas as pd

from services.payloadlens.facts import find_in_payload
from services.payloadlens.normalizer import parse_json
from services.payloadlens.parser import parse_payload
from services.payloadlens.schemas import ParsedPayload
from services.payloadlens.text import compact, format_operation_title, title_case
from services.rowsense import rules
from services.rowsense.schemas import ClassifiedRow, SourceKind
from services.shared.errors import RowRejected

NO_DESCRIPTION = "No description provided."
DESCRIPTION_MAX_LENGTH = 220


# =============================================================================
# ROW ACCESS
# =============================================================================

def normalize_row(raw: Dict[Any, Any]) -> Dict[str, str]:
    """Lower-case, trim and de-BOM column names; trim cell values."""
    row: Dict[str, str] = {}
    for key, value in raw.items():
        clean_key = str(key or "").lstrip("\ufeff").strip().lower()
        missing = value is None or (not isinstance(value, str) and pd.isna(value))
        row[clean_key] = "" if missing else str(value).strip()
    return row


def get_field(row: Dict[str, str], keys: Iterable[str]) -> str:
    for key in keys:
        value = row.get(str(key).lower())
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


# =============================================================================
# TIMESTAMP
# =============================================================================

def parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    normalized = str(value).replace(",", "").strip()
    if not normalized:
        return None
    try:
        parsed = pd.to_datetime(normalized, utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def timestamp_candidates(kind: SourceKind) -> Tuple[str, ...]:
    names = rules.TIMESTAMP_COLUMNS[SourceKind(kind)] + (rules.GENERIC_TIMESTAMP,)
    return tuple(column for name in names for column in (name + rules.UTC_SUFFIX, name))


def resolve_timestamp(row: Dict[str, str], kind: SourceKind) -> Optional[datetime]:
    for column in timestamp_candidates(kind):
        parsed = parse_date(get_field(row, [column]))
        if parsed:
            return parsed
    return None


# =============================================================================
# SEVERITY / STATUS
# =============================================================================

def _as_number(value: str) -> Optional[float]:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def normalize_severity(raw: Optional[str], kind: SourceKind) -> str:
    kind = SourceKind(kind)
    value = str(raw or "").strip().lower()

    numeric = _as_number(value)
    if numeric is not None:
        return rules.NUMERIC_SEVERITY[kind](numeric)

    for needle, severity in rules.TEXT_SEVERITY[kind]:
        if needle in value:
            return severity
    return rules.DEFAULT_SEVERITY


def normalize_status(raw: Optional[str], kind: SourceKind) -> str:
    value = str(raw or "").lower()
    if any(marker in value for marker in rules.RESOLVED_MARKERS):
        return "resolved"
    if any(marker in value for marker in rules.DISMISSED_MARKERS):
        return "dismissed"
    if any(marker in value for marker in rules.ACTIVE_MARKERS):
        return "in_progress" if SourceKind(kind) == SourceKind.INCIDENT else "investigating"
    return "new"


# =============================================================================
# IDENTITY
# =============================================================================

def parse_incident_owner(raw_owner: str) -> Tuple[str, str]:
    """(assignee, actor) out of a Sentinel incident Owner JSON blob."""
    text = (raw_owner or "").strip()
    if not text.startswith("{"):
        return "", ""
    record = parse_json(text)
    if not isinstance(record, dict):
        return "", ""

    def first(*names: str) -> str:
        for name in names:
            value = record.get(name)
            if value:
                return str(value).strip()
        return ""

    assignee = first("assignedTo", "userPrincipalName", "email", "objectId")
    actor = first("userPrincipalName", "email", "assignedTo", "objectId")
    return assignee, actor


def format_provider_label(provider: str) -> str:
    """'MICROSOFT.COMPUTE' -> 'Compute'; mixed-case names without dots pass through."""
    raw = (provider or "").strip()
    if not raw:
        return ""
    if "." not in raw and re.search(r"[a-z]", raw):
        return raw

    tokens = re.sub(r"^MICROSOFT\.", "", raw, flags=re.IGNORECASE).split(".")
    label = tokens[-1] or raw
    return title_case(compact(re.sub(r"[_-]+", " ", label)))


def resolve_identity(row: Dict[str, str], payload: Optional[Dict[str, Any]], field: str) -> str:
    """Flat columns first; the embedded payload only when every column is empty."""
    columns, payload_keys = rules.IDENTITY_FIELDS[field]
    return get_field(row, columns) or find_in_payload(payload, payload_keys)


def summary_from_payload(parsed: ParsedPayload, fallback: str = "") -> str:
    if parsed.normalized:
        direct = compact(find_in_payload(parsed.normalized, rules.SUMMARY_PAYLOAD_KEYS))
        if direct:
            return direct[:DESCRIPTION_MAX_LENGTH]
    if parsed.raw:
        return parsed.raw[:DESCRIPTION_MAX_LENGTH]
    return fallback or NO_DESCRIPTION


# =============================================================================
# CLASSIFY
# =============================================================================

def classify_row(row: Dict[str, str], kind: SourceKind, file_name: str) -> ClassifiedRow:
    """
    Resolve timestamp, severity, status and identity fields for one row.

    Raises RowRejected('missing_timestamp') when no timestamp column parses;
    that is the only acceptance gate.
    """
    kind = SourceKind(kind)

    occurred_at = resolve_timestamp(row, kind)
    if occurred_at is None:
        raise RowRejected("missing_timestamp")

    severity = normalize_severity(get_field(row, rules.SEVERITY_COLUMNS), kind)
    status = normalize_status(get_field(row, rules.STATUS_COLUMNS), kind)

    payload_raw = get_field(row, rules.PAYLOAD_COLUMNS)
    parsed = parse_payload(payload_raw)
    payload = parsed.normalized

    event_code = resolve_identity(row, payload, "event_code")
    event_name = resolve_identity(row, payload, "event_name")
    source = get_field(row, rules.SOURCE_COLUMNS) or file_name
    provider = resolve_identity(row, payload, "provider") or source
    provider_label = format_provider_label(provider)
    category = resolve_identity(row, payload, "category") or "Unknown"

    owner = get_field(row, ["owner", "assignedto"])
    owner_assignee, owner_actor = (
        parse_incident_owner(get_field(row, ["owner"])) if kind == SourceKind.INCIDENT else ("", "")
    )

    actor_columns, actor_payload_keys = rules.IDENTITY_FIELDS["actor"]
    actor = (
        get_field(row, actor_columns)
        or owner_actor
        or find_in_payload(payload, actor_payload_keys)
    )
    resource = resolve_identity(row, payload, "resource")
    ip_address = resolve_identity(row, payload, "ip_address")

    title = format_operation_title(
        find_in_payload(payload, rules.TITLE_PAYLOAD_KEYS)
        or event_name
        or get_field(row, rules.TITLE_COLUMNS)
        or "Event"
    )
    description = summary_from_payload(parsed, get_field(row, rules.DESCRIPTION_COLUMNS))

    assignee = None
    if kind == SourceKind.INCIDENT:
        assignee = owner_assignee or get_field(row, ["assignedto"]) or None

    return ClassifiedRow(
        kind=kind,
        occurred_at=occurred_at,
        severity=severity,
        status=status,
        source=provider_label or source,
        provider=provider,
        category=category,
        event_code=event_code,
        event_name=event_name,
        actor=actor,
        resource=resource,
        ip_address=ip_address,
        title=title,
        description=description,
        payload_raw=payload_raw,
        payload=parsed,
        owner=owner,
        assignee=assignee,
    )
