"""Connection id and display-name rules."""

from __future__ import annotations

import random
import re
import secrets
import time
from dataclasses import dataclass
from typing import Iterable

from .models import ConnectionProfile, DBType

ID_MIN_LENGTH = 8
ID_MAX_LENGTH = 50
NAME_MAX_LENGTH = 100
MAX_ID_ATTEMPTS = 10
MAX_SUFFIX_ATTEMPTS = 100

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_GENERIC_NAME = re.compile(r"^(connection|database|db|test)\s*\d*$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class NameCheck:
    is_valid: bool
    error: str | None = None
    suggestion: str | None = None


def _random_id(size: int = 21) -> str:
    return secrets.token_urlsafe(size)[:size]


def _millis() -> int:
    return int(time.time() * 1000)


def validate_connection_id(value: object) -> NameCheck:
    if not isinstance(value, str) or not value:
        return NameCheck(False, "Connection ID must be a non-empty string")
    if len(value) < ID_MIN_LENGTH:
        return NameCheck(False, f"Connection ID must be at least {ID_MIN_LENGTH} characters long")
    if len(value) > ID_MAX_LENGTH:
        return NameCheck(False, f"Connection ID must be less than {ID_MAX_LENGTH} characters long")
    if not _ID_PATTERN.match(value):
        return NameCheck(False, "Connection ID can only contain letters, numbers, hyphens, and underscores")
    return NameCheck(True)


def validate_connection_name(value: object) -> NameCheck:
    if not isinstance(value, str) or not value:
        return NameCheck(False, "Connection name must be a non-empty string")
    name = value.strip()
    if not name:
        return NameCheck(False, "Connection name cannot be empty")
    if len(name) > NAME_MAX_LENGTH:
        return NameCheck(False, f"Connection name must be less than {NAME_MAX_LENGTH} characters long")
    if _INVALID_NAME_CHARS.search(name):
        return NameCheck(False, "Connection name contains invalid characters")
    if _GENERIC_NAME.match(name):
        return NameCheck(False, "Connection name is too generic, please be more descriptive")
    return NameCheck(True)


def generate_unique_connection_id(existing: Iterable[ConnectionProfile]) -> str:
    """Random url-safe id not used by ``existing``; timestamped after repeated collisions."""

    taken = {profile.id for profile in existing}
    for _ in range(MAX_ID_ATTEMPTS):
        candidate = _random_id()
        if candidate not in taken:
            return candidate
    return f"conn_{_millis()}_{_random_id(6)}"


def ensure_unique_id(candidate: str, existing: Iterable[ConnectionProfile]) -> str:
    """Keep ``candidate`` when valid and free, else suffix it ``_1``, ``_2``..."""

    profiles = list(existing)
    if not validate_connection_id(candidate).is_valid:
        return generate_unique_connection_id(profiles)
    taken = {profile.id for profile in profiles}
    if candidate not in taken:
        return candidate
    for counter in range(1, MAX_SUFFIX_ATTEMPTS + 1):
        suffixed = f"{candidate}_{counter}"
        if suffixed not in taken:
            return suffixed
    return generate_unique_connection_id(profiles)


def is_connection_name_unique(
    name: str, existing: Iterable[ConnectionProfile], exclude_id: str | None = None
) -> bool:
    if not isinstance(name, str) or not name:
        return False
    lowered = name.strip().lower()
    return not any(
        profile.name.lower() == lowered and profile.id != exclude_id for profile in existing
    )


def generate_unique_connection_name(
    base_name: str | None,
    db_type: DBType,
    existing: Iterable[ConnectionProfile],
    exclude_id: str | None = None,
) -> str:
    """Return ``base_name`` or the first free ``"<base> (n)"`` variant."""

    profiles = list(existing)
    base = base_name.strip() if isinstance(base_name, str) and base_name.strip() else f"{db_type.value} Database"
    if is_connection_name_unique(base, profiles, exclude_id):
        return base
    for counter in range(2, MAX_SUFFIX_ATTEMPTS + 2):
        candidate = f"{base} ({counter})"
        if is_connection_name_unique(candidate, profiles, exclude_id):
            return candidate
    return f"{base} ({_millis()}-{random.randrange(1000)})"


def validate_connection_name_complete(
    name: object, existing: Iterable[ConnectionProfile], exclude_id: str | None = None
) -> NameCheck:
    """Format and uniqueness in one check; a taken name comes with a suggestion."""

    check = validate_connection_name(name)
    if not check.is_valid:
        return check
    assert isinstance(name, str)
    profiles = list(existing)
    if is_connection_name_unique(name, profiles, exclude_id):
        return NameCheck(True)
    suggestion = generate_unique_connection_name(name, DBType.POSTGRESQL, profiles, exclude_id)
    return NameCheck(False, f'A connection with the name "{name}" already exists', suggestion)


def find_connection_by_id(profile_id: str, existing: Iterable[ConnectionProfile]) -> ConnectionProfile | None:
    if not profile_id:
        return None
    return next((profile for profile in existing if profile.id == profile_id), None)


def find_connection_by_name(name: str, existing: Iterable[ConnectionProfile]) -> ConnectionProfile | None:
    if not name:
        return None
    lowered = name.strip().lower()
    return next((profile for profile in existing if profile.name.lower() == lowered), None)


__all__ = [
    "NameCheck",
    "ensure_unique_id",
    "find_connection_by_id",
    "find_connection_by_name",
    "generate_unique_connection_id",
    "generate_unique_connection_name",
    "is_connection_name_unique",
    "validate_connection_id",
    "validate_connection_name",
    "validate_connection_name_complete",
]
