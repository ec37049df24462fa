# tests/test_overlay.py
import json

import pytest

from services.overlay.reconciler import (
    apply_override,
    effective_assignee,
    effective_status,
    normalize_assignee,
)


def test_override_status_wins():
    assert effective_status({"status": "new"}, {"status": "resolved"}) == "resolved"


def test_detected_status_without_override():
    assert effective_status({"status": "new"}, None) == "new"
    assert effective_status({"status": "new"}, {"status": None, "assignee": "x"}) == "new"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"email":"a@b.com","displayName":"A B"}', "a@b.com"),
        ('{"assignedTo":"Ana","email":"a@b.com"}', "Ana"),
        ('{"objectId":"0000-1111"}', "0000-1111"),
        ({"userPrincipalName": "u@contoso.com"}, "u@contoso.com"),
        ("  bob@contoso.com ", "bob@contoso.com"),
        ("", None),
        ("   ", None),
        ("null", None),
        ("undefined", None),
        ("NULL", None),
        ("{not json", None),
        ("{}", None),
        ('["a@b.com"]', None),
        (None, None),
        (42, None),
    ],
)
def test_normalize_assignee(raw, expected):
    assert normalize_assignee(raw) == expected


def test_assignee_precedence():
    detected = {
        "assignee": "detected@contoso.com",
        "parsed_facts": {"owner": json.dumps({"email": "owner@contoso.com"})},
    }
    assert effective_assignee(detected, {"assignee": "override@contoso.com"}) == "override@contoso.com"
    assert effective_assignee(detected, {"assignee": "null"}) == "detected@contoso.com"
    assert effective_assignee({**detected, "assignee": None}, None) == "owner@contoso.com"


def test_embedded_owner_from_json_text():
    detected = {"assignee": "", "parsed_facts": json.dumps({"owner": '{"name": "Sam"}'})}
    assert effective_assignee(detected, None) == "Sam"


def test_apply_override_leaves_detected_untouched():
    detected = {"id": 1, "status": "new", "assignee": None, "title": "x"}
    override = {"status": "dismissed", "assignee": "ana", "updated_by": "lead", "updated_at": "t"}

    merged = apply_override(detected, override)

    assert merged["status"] == "dismissed"
    assert merged["assignee"] == "ana"
    assert merged["overridden"] is True
    assert merged["override_updated_by"] == "lead"
    assert detected["status"] == "new"


def test_apply_without_override():
    merged = apply_override({"id": 1, "status": "new", "assignee": "x"}, None)
    assert merged["status"] == "new"
    assert merged["assignee"] == "x"
    assert merged["overridden"] is False
