from typing import Any, Dict, List, Optional

from services.payloadlens.facts import extract_facts
from services.payloadlens.normalizer import (
    flatten,
    normalize_payload,
    parse_json,
    parse_key_values,
    parse_xml,
)
from services.payloadlens.schemas import (
    NO_PAYLOAD_SUMMARY,
    ParsedField,
    ParsedPayload,
    PayloadFacts,
)
from services.payloadlens.text import compact, label_from_path, short_value


def parse_payload(raw_input: Optional[str]) -> ParsedPayload:
    """
    Detect the format of one blob and build its normalized tree and facts.

    Detection runs on the trimmed input so newline-separated key=value
    payloads survive; `raw` keeps the whitespace-compacted form.
    """
    text = (raw_input or "").strip()
    raw = compact(text)

    if not raw:
        return ParsedPayload(
            kind="empty",
            raw="",
            normalized=None,
            facts=PayloadFacts(summary=NO_PAYLOAD_SUMMARY),
        )

    for kind, parser in (("json", parse_json), ("xml", parse_xml), ("kv", parse_key_values)):
        value = parser(text)
        if value is not None:
            normalized = normalize_payload(value)
            return ParsedPayload(
                kind=kind,
                raw=raw,
                normalized=normalized,
                facts=extract_facts(normalized),
            )

    return ParsedPayload(
        kind="text",
        raw=raw,
        normalized=None,
        facts=PayloadFacts(summary=short_value(raw, 220)),
    )


def flatten_for_display(
    normalized: Optional[Dict[str, Any]],
    max_items: int = 16,
    max_value_length: int = 140,
) -> List[ParsedField]:
    """Display rows for a normalized tree; truncation applies only here."""
    if not normalized:
        return []
    return [
        ParsedField(
            key=key,
            label=label_from_path(key),
            value=short_value(value, max_value_length),
        )
        for key, value in flatten(normalized)[:max_items]
    ]


def payload_field_map(raw: Optional[str]) -> Optional[Dict[str, str]]:
    parsed = parse_payload(raw)
    fields = flatten_for_display(parsed.normalized, max_items=48, max_value_length=600)
    if not fields:
        return None
    return {f.key: f.value for f in fields}


def summarize_payload(
    raw: Optional[str],
    max_items: int = 4,
    max_value_length: int = 56,
) -> Optional[str]:
    """One-line 'Label: value | ...' digest used in alert/log lists."""
    parsed = parse_payload(raw)
    if parsed.kind == "empty":
        return None

    fields = flatten_for_display(parsed.normalized, max_items=max_items, max_value_length=max_value_length)
    if fields:
        return " | ".join(f"{f.label}: {f.value}" for f in fields)
    return parsed.facts.summary or None
