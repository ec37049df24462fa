"""
Payload normalization.

Log exports frequently carry a whole serialized document inside a single
CSV cell (Azure `Properties`, Windows `EventData`, firewall
`AdditionalExtensions`, ...). Those documents in turn hold string values that
are themselves JSON, XML or `key=value` lists. This module recognizes the
format of such a blob, recursively unwraps nested blobs into one tree, and
flattens trees into `(path, value)` pairs for field discovery.

Nothing in here raises on malformed input: a blob that fails to parse as one
format falls through to the next one and finally stays a compacted string.
"""

from __future__ import annotations

import json
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

import json5

from services.payloadlens.text import compact, short_value

# recursion budget for unwrapping and flattening
MAX_DEPTH = 8
OVERFLOW_VALUE_LENGTH = 120

_KV_ROW_SPLIT = re.compile(r"\r?\n|;")
_KV_ROW = re.compile(r"^\s*([^=]+?)\s*=\s*(.+?)\s*$")
_INT_TEXT = re.compile(r"^-?(0|[1-9]\d*)$")
_FLOAT_TEXT = re.compile(r"^-?(0|[1-9]\d*)\.\d+$")
_PATH_TOKEN = re.compile(r"\[(\d+)\]|([^.\[\]]+)")


# =============================================================================
# FORMAT PARSERS
# =============================================================================

def parse_json(text: str) -> Any:
    trimmed = text.strip()
    if not (
        (trimmed.startswith("{") and trimmed.endswith("}"))
        or (trimmed.startswith("[") and trimmed.endswith("]"))
    ):
        return None
    try:
        return json.loads(trimmed)
    except (ValueError, RecursionError):
        pass
    # exports hand-edited upstream carry single quotes and trailing commas
    try:
        return json5.loads(trimmed)
    except (ValueError, RecursionError):
        return None


def _local_name(tag: str) -> str:
    # '{http://schemas.microsoft.com/win/2004/08/events/event}Event' -> 'Event'
    return tag.rsplit("}", 1)[-1] if tag.startswith("{") else tag


def _coerce_scalar(text: str) -> Any:
    if text == "true":
        return True
    if text == "false":
        return False
    try:
        if _INT_TEXT.match(text):
            return int(text)
        if _FLOAT_TEXT.match(text):
            return float(text)
    except (ValueError, OverflowError):
        # past the int digit limit
        pass
    return text


def _element_to_value(elem: ET.Element, depth: int) -> Any:
    if depth > MAX_DEPTH:
        return short_value(compact("".join(elem.itertext())), OVERFLOW_VALUE_LENGTH)

    children = list(elem)
    text = (elem.text or "").strip()
    if not children and not elem.attrib:
        return _coerce_scalar(text) if text else ""

    node: Dict[str, Any] = {
        f"@{_local_name(k)}": _coerce_scalar(v.strip()) for k, v in elem.attrib.items()
    }
    for child in children:
        tag = _local_name(child.tag)
        value = _element_to_value(child, depth + 1)
        if tag not in node:
            node[tag] = value
        elif isinstance(node[tag], list):
            node[tag].append(value)
        else:
            node[tag] = [node[tag], value]
    if text:
        node["#text"] = _coerce_scalar(text)
    return node


def parse_xml(text: str) -> Optional[Dict[str, Any]]:
    trimmed = text.strip()
    if not (trimmed.startswith("<") and ">" in trimmed):
        return None
    try:
        root = ET.fromstring(trimmed)
        return {_local_name(root.tag): _element_to_value(root, 1)}
    except (ET.ParseError, ValueError, RecursionError):
        return None


def parse_key_values(text: str) -> Optional[Dict[str, str]]:
    """`a=1; b=2` or one pair per line. Needs at least two pairs."""
    output: Dict[str, str] = {}
    matches = 0
    for row in _KV_ROW_SPLIT.split(text):
        match = _KV_ROW.match(row)
        if not match:
            continue
        matches += 1
        key, value = match.group(1).strip(), match.group(2).strip()
        if key and value:
            output[key] = value
    if matches < 2:
        return None
    return output


def parse_structured(text: str) -> Any:
    """First of JSON, XML, key=value that accepts the text, else None."""
    for parser in (parse_json, parse_xml, parse_key_values):
        value = parser(text)
        if value is not None:
            return value
    return None


def detect(raw: Optional[str]) -> str:
    """Classify a blob as json | xml | kv | text | empty."""
    text = (raw or "").strip()
    if not text:
        return "empty"
    if parse_json(text) is not None:
        return "json"
    if parse_xml(text) is not None:
        return "xml"
    if parse_key_values(text) is not None:
        return "kv"
    return "text"


# =============================================================================
# RECURSIVE UNWRAP
# =============================================================================

def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _normalize_value(value: Any, depth: int) -> Any:
    if depth > MAX_DEPTH:
        if value is None:
            return None
        return short_value(compact(_scalar_text(value)), OVERFLOW_VALUE_LENGTH)

    if isinstance(value, str):
        nested = parse_structured(value)
        if nested is not None:
            return _normalize_value(nested, depth + 1)
        return compact(value)

    if isinstance(value, dict):
        normalized: Dict[str, Any] = {}
        for key, child in value.items():
            clean_key = str(key).strip()
            if not clean_key:
                continue
            normalized[clean_key] = _normalize_value(child, depth + 1)
        return normalized

    if isinstance(value, list):
        return [_normalize_value(item, depth + 1) for item in value]

    return value


def normalize_payload(value: Any) -> Optional[Dict[str, Any]]:
    """
    Build the normalized tree for a decoded payload.

    Top-level arrays are wrapped as {"items": [...]}; an empty object or a
    scalar yields None.
    """
    if isinstance(value, list):
        return {"items": _normalize_value(value, 1)}
    if isinstance(value, dict):
        return _normalize_value(value, 0) or None
    return None


# =============================================================================
# FLATTEN
# =============================================================================

def _flatten_into(value: Any, prefix: str, out: List[Tuple[str, str]], depth: int) -> None:
    if value is None:
        return

    if depth > MAX_DEPTH:
        if prefix:
            text = short_value(compact(_scalar_text(value)), OVERFLOW_VALUE_LENGTH)
            if text:
                out.append((prefix, text))
        return

    if isinstance(value, dict):
        for key, child in value.items():
            _flatten_into(child, f"{prefix}.{key}" if prefix else str(key), out, depth + 1)
        return

    if isinstance(value, list):
        for index, item in enumerate(value, 1):
            _flatten_into(item, f"{prefix}[{index}]", out, depth + 1)
        return

    if prefix:
        text = compact(_scalar_text(value))
        if text:
            out.append((prefix, text))


def flatten(tree: Any) -> List[Tuple[str, str]]:
    """Ordered (dotted path, string value) pairs; arrays as path[n], 1-based."""
    out: List[Tuple[str, str]] = []
    _flatten_into(tree, "", out, 0)
    return out


def _path_tokens(path: str) -> list:
    return [int(index) - 1 if index else name for index, name in _PATH_TOKEN.findall(path)]


def _fits(node: Any, token: Any) -> bool:
    if isinstance(node, list):
        return isinstance(token, int)
    return isinstance(node, dict) and not isinstance(token, int)


def _child(node: Any, token: Any, default: Any) -> Any:
    if not _fits(node, token):
        return None
    if isinstance(node, list):
        while len(node) <= token:
            node.append(None)
        if node[token] is None:
            node[token] = default
        return node[token]
    return node.setdefault(token, default)


def unflatten(pairs: List[Tuple[str, str]]) -> Any:
    """
    Regroup flattened pairs into a tree of string leaves.

    Keys that themselves contain '.' are indistinguishable from nesting and
    come back nested. When two paths collide (one wants a leaf where the
    other needs a branch) the first pair wins and the later one is dropped.
    """
    root: Any = None
    for path, value in pairs:
        tokens = _path_tokens(path)
        if not tokens:
            continue
        if root is None:
            root = [] if isinstance(tokens[0], int) else {}
        node = root
        for token, following in zip(tokens, tokens[1:]):
            node = _child(node, token, [] if isinstance(following, int) else {})
        _child(node, tokens[-1], value)
    return root
