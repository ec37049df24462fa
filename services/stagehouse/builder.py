from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.payloadlens.normalizer import parse_json
from services.rowsense import rules
from services.rowsense.classifier import classify_row, get_field
from services.rowsense.schemas import ClassifiedRow, SourceKind
from services.shared.canon import row_hash, stable_hash
from services.stagehouse.models import ParsedFacts, StagingRecord

RECOMMENDED_ACTIONS = [
    "Review event context",
    "Validate source and actor",
    "Document triage outcome",
]
HIGH_RISK_SEVERITIES = ("critical", "high")
MAX_ENTITY_VALUES = 6
MAX_FACT_LIST = 10


def iso_utc(value: datetime) -> str:
    """'2025-10-29T09:14:03.000Z'; part of the event UID material, keep stable."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def build_event_uid(
    row: Dict[str, str],
    file_name: str,
    kind: SourceKind,
    occurred_at: datetime,
    event_name: str,
    resource: str,
    actor: str,
    summary: str,
) -> str:
    """
    Idempotency key of a staged row.

    A natural identifier wins when the export carries one. Otherwise the key
    is a content hash, so two distinct events sharing all six inputs collide.
    """
    kind = SourceKind(kind).value
    stable = get_field(row, rules.STABLE_ID_COLUMNS)
    if stable:
        return f"{kind}-{stable.lower()}"

    digest = stable_hash([
        file_name,
        iso_utc(occurred_at),
        event_name or "",
        resource or "",
        actor or "",
        summary or "",
    ])
    return f"{kind}-{digest}"


def unique_values(*values: Any, limit: int = MAX_ENTITY_VALUES) -> List[str]:
    seen: List[str] = []
    for value in values:
        text = str(value or "").strip()
        if text and text not in seen:
            seen.append(text)
    return seen[:limit] if seen else ["Unknown"]


def _json_cell(row: Dict[str, str], column: str) -> Any:
    return parse_json(get_field(row, [column]))


def build_parsed_facts(row: Dict[str, str], classified: ClassifiedRow) -> ParsedFacts:
    additional = _json_cell(row, "additionaldata")
    if not isinstance(additional, dict):
        additional = {}
    tactics = additional.get("tactics")
    tactics = [str(t) for t in tactics if t][:MAX_FACT_LIST] if isinstance(tactics, list) else []
    alert_count = additional.get("alertsCount")

    related = _json_cell(row, "relatedanalyticruleids")
    rule_ids = [str(v) for v in related][:MAX_FACT_LIST] if isinstance(related, list) else []

    return ParsedFacts(
        kind=classified.kind.value,
        title=classified.title,
        summary=classified.description or "No description provided.",
        status=classified.status,
        severity=classified.severity,
        source=classified.source,
        provider=classified.provider or classified.source,
        category=classified.category,
        event_code=classified.event_code,
        event_name=classified.event_name,
        actor=classified.actor,
        resource=classified.resource,
        ip=classified.ip_address,
        incident_id=get_field(
            row, ["incidentnumber", "providerincidentid", "correlationid", "incidentname"]
        ),
        classification=get_field(row, ["classification", "classificationreason"]),
        owner=classified.owner,
        alert_count="" if alert_count is None else str(alert_count),
        tactics=tactics,
        rule_ids=rule_ids,
        has_payload_json=bool(classified.payload.normalized),
    )


def build_staging_record(
    row: Dict[str, str],
    kind: SourceKind,
    file_name: str,
    row_number: int,
    run_id: Optional[int] = None,
) -> StagingRecord:
    """One staging record per accepted row. Propagates RowRejected."""
    classified = classify_row(row, kind, file_name)

    event_uid = build_event_uid(
        row,
        file_name,
        classified.kind,
        classified.occurred_at,
        classified.event_name,
        classified.resource,
        classified.actor,
        classified.description,
    )

    return StagingRecord(
        ingest_run_id=run_id,
        event_uid=event_uid,
        source_file=file_name,
        source_kind=classified.kind.value,
        source_row_number=row_number,
        occurred_at=iso_utc(classified.occurred_at),
        severity=classified.severity,
        status=classified.status,
        source=classified.source,
        provider=classified.provider,
        category=classified.category,
        event_code=classified.event_code or None,
        event_name=classified.event_name or None,
        actor=classified.actor or None,
        resource=classified.resource or None,
        ip_address=classified.ip_address or None,
        payload_raw=classified.payload_raw or None,
        payload_json=classified.payload.normalized,
        parsed_facts=build_parsed_facts(row, classified),
        summary=classified.description,
        raw_row=row,
        row_hash=row_hash(row),
        title=classified.title,
        description=classified.description,
        assignee=classified.assignee,
        tactics=unique_values(classified.category, classified.kind.value),
        affected_entities=unique_values(classified.resource, classified.actor),
        recommended_actions=list(RECOMMENDED_ACTIONS),
        is_alert_candidate=(
            classified.kind == SourceKind.INCIDENT
            or classified.severity in HIGH_RISK_SEVERITIES
        ),
    )


def to_row(record: StagingRecord) -> Dict[str, Any]:
    """Column dict for the staging upsert."""
    return record.model_dump(mode="json")
