"""
String Helpers.

Key-case conversion for stored JSON payloads (settings values are kept in
camelCase, the Python side reads snake_case) and sanitisation of free-text
search terms before they are interpolated into PostgREST filters.
"""

from __future__ import annotations

import re
from typing import Union

__all__ = [
    "JsonValue",
    "normalize_keys",
    "sanitize_search_term",
    "to_snake_case",
]

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

# "enableEmailNotifications" -> "enable_Email_Notifications"
_RE_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
_RE_UPPER_RUN = re.compile(r"([A-Z]+)([A-Z][a-z])")


def to_snake_case(name: str) -> str:
    """Convert camelCase or PascalCase to snake_case.

    ``enableMembershipPayment`` -> ``enable_membership_payment``
    """
    s1 = _RE_UPPER_RUN.sub(r"\1_\2", name)
    return _RE_CAMEL_BOUNDARY.sub(r"\1_\2", s1).lower()


def normalize_keys(data: JsonValue) -> JsonValue:
    """Recursively convert every dictionary key to snake_case."""
    if isinstance(data, dict):
        return {to_snake_case(k): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


# Keep letters, digits, whitespace, hyphens, '@' and '.' (emails).  Commas,
# parentheses and wildcards would otherwise alter a PostgREST ``or`` filter.
_SEARCH_UNSAFE_RE: re.Pattern[str] = re.compile(r"[^\w\s\-@.]")


def sanitize_search_term(value: str) -> str:
    """Strip characters unsafe for PostgREST ``ilike`` interpolation."""
    return _SEARCH_UNSAFE_RE.sub("", value).replace("_", "").strip()
