from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

PayloadKind = Literal["json", "xml", "kv", "text", "empty"]

UNKNOWN = "Unknown"
NO_PAYLOAD_SUMMARY = "No event payload available."
ATTACHED_PAYLOAD_SUMMARY = "Event payload attached. Open details to inspect."


class ParsedField(BaseModel):
    key: str
    label: str
    value: str


class PayloadFacts(BaseModel):
    title: str = "Event"
    summary: str = ATTACHED_PAYLOAD_SUMMARY
    actor: str = UNKNOWN
    ip: str = UNKNOWN
    resource: str = UNKNOWN
    category: str = UNKNOWN
    action: str = UNKNOWN
    status: str = UNKNOWN


class ParsedPayload(BaseModel):
    kind: PayloadKind
    raw: str
    normalized: Optional[Dict[str, Any]] = None
    facts: PayloadFacts
