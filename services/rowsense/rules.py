"""
Column vocabularies and classification tables per source kind.

The numeric severity boundaries differ per export and are kept as observed
in the data (Windows event levels are not a linear risk score).
"""

from services.rowsense.schemas import SourceKind

UTC_SUFFIX = " [utc]"
GENERIC_TIMESTAMP = "timegenerated"

TIMESTAMP_COLUMNS = {
    SourceKind.INCIDENT: ("createdtime", "firstactivitytime", "lastactivitytime", "closedtime"),
    SourceKind.ACTIVITY: ("eventsubmissiontimestamp",),
    SourceKind.FIREWALL: ("starttime", "endtime", "receipttime"),
    SourceKind.SECURITY_EVENT: ("eventsubmissiontimestamp", "timecollected"),
}

SEVERITY_COLUMNS = (
    "severity", "logseverity", "level", "eventlevelname", "activitystatusvalue", "threatseverity",
)
STATUS_COLUMNS = ("status", "activitystatusvalue", "eventoutcome")

PAYLOAD_COLUMNS = (
    "eventdata", "properties", "httprequest", "additionalextensions", "additionaldata",
    "description", "message", "comments",
)

SOURCE_COLUMNS = (
    "sourcesystem", "providername", "categoryvalue", "category", "resourceprovidervalue",
    "devicevendor",
)

STABLE_ID_COLUMNS = ("eventdataid", "incidentnumber", "correlationid")

# field -> (flat column names, embedded payload key suffixes)
IDENTITY_FIELDS = {
    "actor": (
        ("caller", "account", "accountname", "subjectusername", "sourceusername",
         "destinationusername"),
        ("caller", "account", "targetUser", "subjectUserName", "SourceUserName",
         "DestinationUserName"),
    ),
    "resource": (
        ("resource", "resourceid", "entity", "computer", "workstation", "destinationhostname",
         "devicename"),
        ("resource", "entity", "resourceId", "fullFilePath", "filePath", "DestinationHostName",
         "SourceHostName"),
    ),
    "ip_address": (
        ("calleripaddress", "ipaddress", "remoteipaddress", "clientipaddress", "clientaddress",
         "sourceip", "destinationip", "remoteip", "maliciousip"),
        ("callerIpAddress", "ipAddress", "remoteIpAddress", "SourceIP", "DestinationIP",
         "clientIpAddress"),
    ),
    "provider": (
        ("resourceprovidervalue", "providername", "eventsourcename", "sourcesystem",
         "deviceproduct", "resourceprovider"),
        ("resourceProviderValue", "providerName", "provider", "eventSourceName"),
    ),
    "category": (
        ("categoryvalue", "category", "channel", "task", "eventcategory", "deviceeventcategory",
         "type"),
        ("categoryValue", "category", "eventCategory", "channel", "task"),
    ),
    "event_code": (
        ("eventid", "incidentnumber", "eventdataid", "correlationid", "operationid"),
        ("eventId", "eventCode", "correlationId", "operationId"),
    ),
    "event_name": (
        ("operationnamevalue", "title", "activity", "incidentname", "eventsourcename",
         "operationname"),
        ("operationNameValue", "operationName", "activity", "action"),
    ),
}

SUMMARY_PAYLOAD_KEYS = (
    "message", "Activity", "DeviceAction", "FTNTFGTaction", "RequestURL", "Reason",
    "description", "eventCategory", "statusCode",
)
TITLE_PAYLOAD_KEYS = ("message", "action", "operationNameValue")
TITLE_COLUMNS = ("title", "activity", "operationnamevalue")
DESCRIPTION_COLUMNS = ("description", "activity", "title", "message")


def _incident_severity(n: float) -> str:
    if n >= 3:
        return "critical"
    if n >= 2:
        return "high"
    if n >= 1:
        return "medium"
    return "low"


def _windows_level_severity(n: float) -> str:
    # 0/4/8 are informational classes in Windows exports
    if n == 1:
        return "critical"
    if n == 2:
        return "high"
    if n == 3:
        return "medium"
    if n in (0, 4, 8):
        return "low"
    return "medium"


def _firewall_severity(n: float) -> str:
    if n >= 8:
        return "high"
    if n >= 5:
        return "medium"
    if n >= 3:
        return "medium"
    return "low"


def _activity_severity(n: float) -> str:
    if n >= 8:
        return "high"
    if n >= 5:
        return "medium"
    if n >= 3:
        return "medium"
    return "informational"


NUMERIC_SEVERITY = {
    SourceKind.INCIDENT: _incident_severity,
    SourceKind.SECURITY_EVENT: _windows_level_severity,
    SourceKind.FIREWALL: _firewall_severity,
    SourceKind.ACTIVITY: _activity_severity,
}

# (substring, severity), first match wins
TEXT_SEVERITY = {
    SourceKind.INCIDENT: (
        ("critical", "critical"),
        ("high", "high"),
        ("medium", "medium"),
        ("low", "low"),
        ("informational", "low"),
        ("info", "low"),
    ),
    SourceKind.ACTIVITY: (
        ("critical", "critical"),
        ("error", "high"),
        ("failed", "high"),
        ("warning", "medium"),
        ("warn", "medium"),
        ("information", "informational"),
        ("success", "informational"),
    ),
    SourceKind.FIREWALL: (
        ("critical", "critical"),
        ("high", "high"),
        ("notice", "medium"),
        ("warning", "medium"),
        ("info", "informational"),
        ("informational", "informational"),
    ),
    SourceKind.SECURITY_EVENT: (
        ("critical", "critical"),
        ("error", "high"),
        ("high", "high"),
        ("warning", "medium"),
        ("warn", "medium"),
        ("informational", "informational"),
        ("success", "informational"),
    ),
}
DEFAULT_SEVERITY = "low"

RESOLVED_MARKERS = ("resolved", "closed", "complete", "success")
DISMISSED_MARKERS = ("dismiss", "false")
ACTIVE_MARKERS = ("progress", "active", "investigat")
