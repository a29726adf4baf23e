"""Personal-data guard for anything written to storage.

Keys are compared exactly (case and underscores ignored) against a list of
personal-data field names; string values are scanned for contact-detail
patterns. A pet's own `name` is allowed: it belongs to the robot, not the
child.
"""

import re
from typing import Any

PII_FIELDS = frozenset({
    "firstname", "lastname", "fullname", "realname", "actualname",
    "email", "emailaddress",
    "phone", "phonenumber", "telephone",
    "address", "streetaddress", "homeaddress",
    "location", "geolocation", "coordinates",
    "ip", "ipaddress", "useragent", "deviceid",
    "ssn", "socialsecuritynumber",
    "birthdate", "dateofbirth", "birthday",
    "school", "schoolname",
    "parent", "parentname", "guardian",
})

PII_PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "phone": re.compile(r"\b\d{3}-\d{3}-\d{4}\b"),
    "address": re.compile(
        r"\b\d{1,5}\s\w+\s(street|st|avenue|ave|road|rd|drive|dr|lane|ln|boulevard|blvd)\b",
        re.IGNORECASE,
    ),
}


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def find_privacy_issues(data: Any, path: str = "$") -> list[str]:
    """Return a description of every personal-data hit in a JSON-like value."""
    issues: list[str] = []
    if isinstance(data, dict):
        for key, value in data.items():
            key_path = f"{path}.{key}"
            if isinstance(key, str) and _normalize_key(key) in PII_FIELDS:
                issues.append(f"personal field {key_path}")
            issues.extend(find_privacy_issues(value, key_path))
    elif isinstance(data, (list, tuple)):
        for i, item in enumerate(data):
            issues.extend(find_privacy_issues(item, f"{path}[{i}]"))
    elif isinstance(data, str):
        for label, pattern in PII_PATTERNS.items():
            if pattern.search(data):
                issues.append(f"{label} pattern at {path}")
    return issues
