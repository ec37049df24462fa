import re

_WS = re.compile(r"\s+")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")

# compound operation tokens seen in Azure activity exports
_COMPOUND_TOKENS = (
    ("listkeys", "list keys"),
    ("listcluster", "list cluster"),
    ("clusteruser", "cluster user"),
    ("usercredential", "user credential"),
    ("admincredential", "admin credential"),
)


def compact(value) -> str:
    if value is None:
        return ""
    return _WS.sub(" ", str(value)).strip()


def short_value(value: str, max_length: int = 160) -> str:
    return f"{value[:max_length]}..." if len(value) > max_length else value


def title_case(value: str) -> str:
    if not value:
        return value
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), value.lower())


def split_camel(value: str) -> str:
    value = _ACRONYM_BOUNDARY.sub(r"\1 \2", value)
    return _CAMEL_BOUNDARY.sub(r"\1 \2", value)


def humanize_token(value: str) -> str:
    value = re.sub(r"\[@.*?\]", "", value)
    value = re.sub(r"\[\d+\]", "", value)
    value = split_camel(value)
    value = re.sub(r"[_./:-]+", " ", value)
    return compact(value)


def label_from_path(path: str) -> str:
    key = path.split(".")[-1] or path
    return title_case(humanize_token(key))


def format_operation_title(raw_operation) -> str:
    """
    'Microsoft.Storage/storageAccounts/listKeys/action' style identifiers
    reduced to a readable title. Empty input yields 'Event'.
    """
    raw = compact(raw_operation)
    if not raw:
        return "Event"

    value = raw
    if "/" in raw:
        segments = [s for s in raw.split("/") if s]
        value = segments[-1] if segments else raw

    for token, expanded in _COMPOUND_TOKENS:
        value = re.sub(token, expanded, value, flags=re.IGNORECASE)
    value = split_camel(value)
    value = re.sub(r"[_-]+", " ", value)
    return title_case(compact(value)) or "Event"


def pretty_message(value: str) -> str:
    clean = compact(value)
    if clean and "/" in clean:
        return format_operation_title(clean)
    return clean
