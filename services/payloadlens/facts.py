from typing import Any, Dict, Iterable, List, Optional, Tuple

from services.payloadlens.normalizer import flatten
from services.payloadlens.schemas import (
    ATTACHED_PAYLOAD_SUMMARY,
    UNKNOWN,
    PayloadFacts,
)
from services.payloadlens.text import format_operation_title, pretty_message, short_value

SUMMARY_MAX_LENGTH = 220

# Evaluated in order; within a fact, the first suffix that matches any
# flattened key wins regardless of where that key sits in the payload.
FACT_CANDIDATES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("action", ("operationnamevalue", "activity", "action", "event.action", "message")),
    ("category", ("categoryvalue", "category", "eventcategory", "channel", "task")),
    ("status", ("activitystatusvalue", "status", "statuscode", "eventoutcome")),
    ("actor", (
        "caller", "account", "accountname", "subjectusername", "targetuser", "sourceusername",
    )),
    ("resource", (
        "resource", "entity", "resourceid", "fullfilepath", "filepath", "computer",
        "destinationhostname",
    )),
    ("ip", (
        "calleripaddress", "ipaddress", "remoteipaddress", "clientipaddress", "sourceip",
        "destinationip",
    )),
)

SUMMARY_CANDIDATES = ("message", "description")


def find_value(flattened: List[Tuple[str, str]], candidates: Iterable[str]) -> str:
    """Value of the first flattened key ending with a candidate suffix (case-insensitive)."""
    lowered = [(key.lower(), value) for key, value in flattened]
    for candidate in candidates:
        suffix = candidate.lower()
        for key, value in lowered:
            if value and key.endswith(suffix):
                return value
    return ""


def find_in_payload(tree: Any, candidates: Iterable[str]) -> str:
    if not tree:
        return ""
    return find_value(flatten(tree), candidates)


def extract_facts(normalized: Optional[Dict[str, Any]]) -> PayloadFacts:
    flattened = flatten(normalized) if normalized else []
    found = {fact: find_value(flattened, candidates) for fact, candidates in FACT_CANDIDATES}

    parts = [
        pretty_message(find_value(flattened, SUMMARY_CANDIDATES)),
        f"Category: {found['category']}" if found["category"] else "",
        f"Status: {found['status']}" if found["status"] else "",
        f"Resource: {found['resource']}" if found["resource"] else "",
    ]
    parts = [p for p in parts if p]
    summary = short_value(" | ".join(parts), SUMMARY_MAX_LENGTH) if parts else ATTACHED_PAYLOAD_SUMMARY

    return PayloadFacts(
        title=format_operation_title(found["action"] or found["category"] or "Event"),
        summary=summary,
        actor=found["actor"] or UNKNOWN,
        ip=found["ip"] or UNKNOWN,
        resource=found["resource"] or UNKNOWN,
        category=found["category"] or UNKNOWN,
        action=found["action"] or UNKNOWN,
        status=found["status"] or UNKNOWN,
    )
