from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ParsedFacts(BaseModel):
    kind: str
    title: str
    summary: str
    status: str
    severity: str
    source: str
    provider: str
    category: str
    event_code: str = ""
    event_name: str = ""
    actor: str = ""
    resource: str = ""
    ip: str = ""
    incident_id: str = ""
    classification: str = ""
    owner: str = ""
    alert_count: str = ""
    tactics: List[str] = Field(default_factory=list)
    rule_ids: List[str] = Field(default_factory=list)
    has_payload_json: bool = False


class StagingRecord(BaseModel):
    ingest_run_id: Optional[int] = None
    event_uid: str
    source_file: str
    source_kind: str
    source_row_number: int
    occurred_at: str = Field(..., description="ISO-8601 UTC, millisecond precision")
    severity: str
    status: str
    source: str
    provider: str
    category: str
    event_code: Optional[str] = None
    event_name: Optional[str] = None
    actor: Optional[str] = None
    resource: Optional[str] = None
    ip_address: Optional[str] = None
    payload_raw: Optional[str] = None
    payload_json: Optional[Dict[str, Any]] = None
    parsed_facts: ParsedFacts
    summary: str
    raw_row: Dict[str, str]
    row_hash: str
    title: str
    description: str
    assignee: Optional[str] = None
    tactics: List[str] = Field(default_factory=list)
    affected_entities: List[str] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    is_alert_candidate: bool = False
