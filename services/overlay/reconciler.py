# services/overlay/reconciler.py
import json
from typing import Any, Dict, Mapping, Optional

ASSIGNEE_FIELDS = (
    "assignedTo",
    "userPrincipalName",
    "email",
    "name",
    "displayName",
    "objectId",
)
NULL_LITERALS = ("null", "undefined")


def _from_record(record: Mapping[str, Any]) -> Optional[str]:
    for name in ASSIGNEE_FIELDS:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_assignee(value: Any) -> Optional[str]:
    """
    Human principal name out of a plain or JSON-encoded assignee value.

    '{"email":"a@b.com","displayName":"A B"}' -> 'a@b.com'
    Empty, "null"/"undefined" and JSON or array text that yields no
    principal all normalize to None.
    """
    if value is None:
        return None
    if isinstance(value, Mapping):
        return _from_record(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text or text.lower() in NULL_LITERALS:
        return None

    if text.startswith("{"):
        try:
            record = json.loads(text)
        except ValueError:
            return None
        return _from_record(record) if isinstance(record, dict) else None

    # never surface raw array text as a person
    if text.startswith("["):
        return None
    return text


def effective_status(detected: Mapping[str, Any], override: Optional[Mapping[str, Any]]) -> Any:
    if override and override.get("status"):
        return override["status"]
    return detected.get("status")


def _embedded_owner(detected: Mapping[str, Any]) -> Any:
    facts = detected.get("parsed_facts")
    if isinstance(facts, str):
        try:
            facts = json.loads(facts)
        except ValueError:
            return None
    if isinstance(facts, Mapping):
        return facts.get("owner")
    return None


def effective_assignee(
    detected: Mapping[str, Any],
    override: Optional[Mapping[str, Any]],
) -> Optional[str]:
    candidates = (
        (override or {}).get("assignee"),
        detected.get("assignee"),
        _embedded_owner(detected),
    )
    for candidate in candidates:
        name = normalize_assignee(candidate)
        if name:
            return name
    return None


def apply_override(
    detected: Mapping[str, Any],
    override: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Read-time view of an alert or log row; the stored row is never changed."""
    merged = dict(detected)
    merged["status"] = effective_status(detected, override)
    merged["assignee"] = effective_assignee(detected, override)
    merged["overridden"] = bool(override)
    if override:
        merged["override_updated_at"] = override.get("updated_at")
        merged["override_updated_by"] = override.get("updated_by")
    return merged
