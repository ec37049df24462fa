from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from services.payloadlens.schemas import ParsedPayload


class SourceKind(str, Enum):
    INCIDENT = "incident"
    ACTIVITY = "activity"
    FIREWALL = "firewall"
    SECURITY_EVENT = "security_event"


class ClassifiedRow(BaseModel):
    kind: SourceKind
    occurred_at: datetime
    severity: str
    status: str
    source: str
    provider: str
    category: str
    event_code: str = ""
    event_name: str = ""
    actor: str = ""
    resource: str = ""
    ip_address: str = ""
    title: str
    description: str
    payload_raw: str = ""
    payload: ParsedPayload
    owner: str = ""
    assignee: Optional[str] = None
