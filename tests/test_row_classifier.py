# tests/test_row_classifier.py
import json
from datetime import datetime, timezone

import pytest

from services.rowsense.classifier import (
    classify_row,
    format_provider_label,
    normalize_row,
    normalize_severity,
    normalize_status,
    parse_incident_owner,
    resolve_timestamp,
)
from services.rowsense.schemas import SourceKind
from services.shared.errors import RowRejected


@pytest.mark.parametrize(
    "raw, kind, expected",
    [
        ("1", SourceKind.SECURITY_EVENT, "critical"),
        ("2", SourceKind.SECURITY_EVENT, "high"),
        ("3", SourceKind.SECURITY_EVENT, "medium"),
        ("4", SourceKind.SECURITY_EVENT, "low"),
        ("0", SourceKind.SECURITY_EVENT, "low"),
        ("8", SourceKind.SECURITY_EVENT, "low"),
        ("5", SourceKind.SECURITY_EVENT, "medium"),
        ("3", SourceKind.INCIDENT, "critical"),
        ("2", SourceKind.INCIDENT, "high"),
        ("1", SourceKind.INCIDENT, "medium"),
        ("0", SourceKind.INCIDENT, "low"),
        ("9", SourceKind.FIREWALL, "high"),
        ("5", SourceKind.FIREWALL, "medium"),
        ("3", SourceKind.FIREWALL, "medium"),
        ("1", SourceKind.FIREWALL, "low"),
        ("8", SourceKind.ACTIVITY, "high"),
        ("2", SourceKind.ACTIVITY, "informational"),
        ("Critical", SourceKind.ACTIVITY, "critical"),
        ("Error", SourceKind.ACTIVITY, "high"),
        ("Warning", SourceKind.SECURITY_EVENT, "medium"),
        ("Informational", SourceKind.INCIDENT, "low"),
        ("Notice", SourceKind.FIREWALL, "medium"),
        ("Success", SourceKind.ACTIVITY, "informational"),
        ("", SourceKind.FIREWALL, "low"),
        ("banana", SourceKind.INCIDENT, "low"),
    ],
)
def test_normalize_severity(raw, kind, expected):
    assert normalize_severity(raw, kind) == expected


@pytest.mark.parametrize(
    "raw, kind, expected",
    [
        ("Closed", SourceKind.INCIDENT, "resolved"),
        ("Completed", SourceKind.ACTIVITY, "resolved"),
        ("Dismissed", SourceKind.INCIDENT, "dismissed"),
        ("FalsePositive", SourceKind.INCIDENT, "dismissed"),
        ("Active", SourceKind.INCIDENT, "in_progress"),
        ("Active", SourceKind.FIREWALL, "investigating"),
        ("Investigating", SourceKind.SECURITY_EVENT, "investigating"),
        ("New", SourceKind.INCIDENT, "new"),
        ("", SourceKind.ACTIVITY, "new"),
    ],
)
def test_normalize_status(raw, kind, expected):
    assert normalize_status(raw, kind) == expected


def test_normalize_row_cleans_headers_and_cells():
    row = normalize_row({"\ufeffTimeGenerated [UTC]": " 2025-01-01 ", " Caller ": None, "Level": float("nan")})
    assert row == {"timegenerated [utc]": "2025-01-01", "caller": "", "level": ""}


def test_kind_specific_timestamp_wins_over_generic():
    row = {
        "createdtime [utc]": "2025-03-01 10:00:00",
        "timegenerated [utc]": "2025-01-01 00:00:00",
    }
    assert resolve_timestamp(row, SourceKind.INCIDENT) == datetime(2025, 3, 1, 10, tzinfo=timezone.utc)


def test_unparseable_candidates_fall_through():
    row = {"createdtime": "not a date", "closedtime": "2025-03-02T08:30:00Z"}
    assert resolve_timestamp(row, SourceKind.INCIDENT) == datetime(2025, 3, 2, 8, 30, tzinfo=timezone.utc)


def test_timestamp_with_commas():
    row = {"timegenerated": "3/1/2025, 10:15:00 AM"}
    assert resolve_timestamp(row, SourceKind.FIREWALL) == datetime(2025, 3, 1, 10, 15, tzinfo=timezone.utc)


def test_missing_timestamp_is_rejected():
    with pytest.raises(RowRejected) as exc:
        classify_row({"severity": "high", "title": "x"}, SourceKind.INCIDENT, "Incedent.csv")
    assert exc.value.reason == "missing_timestamp"


def test_flat_columns_win_over_payload():
    row = {
        "timegenerated": "2025-01-01T00:00:00Z",
        "caller": "column-user",
        "properties": json.dumps({"caller": "payload-user", "resourceId": "/vm/from-payload"}),
    }
    classified = classify_row(row, SourceKind.ACTIVITY, "AzurActivity.csv")
    assert classified.actor == "column-user"
    assert classified.resource == "/vm/from-payload"


def test_security_event_with_xml_payload():
    row = {
        "timegenerated": "2025-01-01T00:00:00Z",
        "eventdata": (
            "<EventData><Data Name='SubjectUserName'>svc-sql</Data>"
            "<Data Name='IpAddress'>10.1.2.3</Data></EventData>"
        ),
        "eventid": "4625",
        "level": "2",
    }
    classified = classify_row(row, SourceKind.SECURITY_EVENT, "Sec Event.csv")
    assert classified.event_code == "4625"
    assert classified.severity == "high"
    assert classified.payload.kind == "xml"
    assert classified.payload_raw == row["eventdata"]


def test_payload_identity_fallback_from_key_values():
    row = {
        "timegenerated": "2025-01-01T00:00:00Z",
        "additionalextensions": "SourceUserName=mallory;SourceIP=198.51.100.7;DeviceAction=deny",
    }
    classified = classify_row(row, SourceKind.FIREWALL, "FierWall.csv")
    assert classified.actor == "mallory"
    assert classified.ip_address == "198.51.100.7"
    assert classified.description == "deny"


def test_activity_row_title_and_source():
    row = {
        "timegenerated [utc]": "2025-10-29 09:14:03",
        "operationnamevalue": "MICROSOFT.COMPUTE/VIRTUALMACHINESCALESETS/WRITE",
        "resourceprovidervalue": "MICROSOFT.COMPUTE",
        "categoryvalue": "Administrative",
        "activitystatusvalue": "Success",
    }
    classified = classify_row(row, SourceKind.ACTIVITY, "AzurActivity.csv")
    assert classified.title == "Write"
    assert classified.source == "Compute"
    assert classified.provider == "MICROSOFT.COMPUTE"
    assert classified.category == "Administrative"
    assert classified.status == "resolved"
    assert classified.severity == "informational"
    assert classified.assignee is None


def test_incident_owner_and_assignee():
    owner = json.dumps({"assignedTo": "Ana Analyst", "email": "ana@contoso.com", "userPrincipalName": "ana@contoso.com"})
    row = {
        "createdtime": "2025-02-01T12:00:00Z",
        "title": "Suspicious sign-in",
        "severity": "High",
        "status": "Active",
        "owner": owner,
    }
    classified = classify_row(row, SourceKind.INCIDENT, "Incedent.csv")
    assert classified.assignee == "Ana Analyst"
    assert classified.actor == "ana@contoso.com"
    assert classified.status == "in_progress"
    assert classified.severity == "high"
    assert classified.title == "Suspicious Sign In"
    assert classified.owner == owner


def test_parse_incident_owner_ignores_garbage():
    assert parse_incident_owner("") == ("", "")
    assert parse_incident_owner("{broken") == ("", "")
    assert parse_incident_owner('{"objectId": "abc"}') == ("abc", "abc")


def test_format_provider_label():
    assert format_provider_label("MICROSOFT.COMPUTE") == "Compute"
    assert format_provider_label("Microsoft.Network_Security") == "Network Security"
    assert format_provider_label("Palo Alto") == "Palo Alto"
    assert format_provider_label("") == ""
