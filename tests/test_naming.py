from __future__ import annotations

import pytest

from seerdb import naming
from seerdb.models import ConnectionProfile, DBType
from seerdb.naming import (
    ensure_unique_id,
    find_connection_by_id,
    find_connection_by_name,
    generate_unique_connection_id,
    generate_unique_connection_name,
    is_connection_name_unique,
    validate_connection_id,
    validate_connection_name,
    validate_connection_name_complete,
)


def _profile(profile_id: str, name: str) -> ConnectionProfile:
    return ConnectionProfile(
        id=profile_id,
        name=name,
        type=DBType.POSTGRESQL,
        connection_string="postgresql://localhost/app",
        created_at="2024-01-01T00:00:00Z",
        updated_at="2024-01-01T00:00:00Z",
    )


@pytest.mark.parametrize(
    ("value", "error"),
    [
        (None, "Connection ID must be a non-empty string"),
        ("", "Connection ID must be a non-empty string"),
        ("short", "Connection ID must be at least 8 characters long"),
        ("x" * 51, "Connection ID must be less than 50 characters long"),
        ("has spaces!", "Connection ID can only contain letters, numbers, hyphens, and underscores"),
    ],
)
def test_invalid_connection_ids(value: object, error: str) -> None:
    check = validate_connection_id(value)

    assert not check.is_valid
    assert check.error == error


def test_valid_connection_id() -> None:
    assert validate_connection_id("conn_1234-abcd").is_valid


@pytest.mark.parametrize(
    ("value", "error"),
    [
        (42, "Connection name must be a non-empty string"),
        ("   ", "Connection name cannot be empty"),
        ("n" * 101, "Connection name must be less than 100 characters long"),
        ("prod/replica", "Connection name contains invalid characters"),
        ("Database 2", "Connection name is too generic, please be more descriptive"),
        ("test", "Connection name is too generic, please be more descriptive"),
    ],
)
def test_invalid_connection_names(value: object, error: str) -> None:
    check = validate_connection_name(value)

    assert not check.is_valid
    assert check.error == error


def test_valid_connection_name() -> None:
    assert validate_connection_name("Analytics replica").is_valid


def test_generated_id_avoids_collisions(monkeypatch: pytest.MonkeyPatch) -> None:
    candidates = iter(["taken-id-0001", "fresh-id-0002"])
    monkeypatch.setattr(naming, "_random_id", lambda size=21: next(candidates))

    assert generate_unique_connection_id([_profile("taken-id-0001", "A")]) == "fresh-id-0002"


def test_generated_id_falls_back_to_timestamp(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(naming, "_random_id", lambda size=21: "always-the-same")
    monkeypatch.setattr(naming, "_millis", lambda: 1700000000000)

    result = generate_unique_connection_id([_profile("always-the-same", "A")])

    assert result == "conn_1700000000000_always-the-same"


def test_ensure_unique_id_suffixes_taken_ids() -> None:
    existing = [_profile("primary-db", "A"), _profile("primary-db_1", "B")]

    assert ensure_unique_id("primary-db", existing) == "primary-db_2"
    assert ensure_unique_id("replica-db", existing) == "replica-db"


def test_ensure_unique_id_replaces_invalid_candidate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(naming, "_random_id", lambda size=21: "generated-0001")

    assert ensure_unique_id("bad id", []) == "generated-0001"


def test_name_uniqueness_is_case_insensitive() -> None:
    existing = [_profile("id-00000001", "Analytics")]

    assert not is_connection_name_unique("analytics", existing)
    assert not is_connection_name_unique("  ANALYTICS ", existing)
    assert is_connection_name_unique("analytics", existing, exclude_id="id-00000001")
    assert not is_connection_name_unique("", existing)


def test_generate_unique_name_appends_counter() -> None:
    existing = [_profile("id-1", "Analytics"), _profile("id-2", "Analytics (2)")]

    assert generate_unique_connection_name("Analytics", DBType.POSTGRESQL, existing) == "Analytics (3)"
    assert generate_unique_connection_name("Reporting", DBType.POSTGRESQL, existing) == "Reporting"


def test_generate_unique_name_defaults_from_dialect() -> None:
    assert generate_unique_connection_name("  ", DBType.MYSQL, []) == "mysql Database"
    assert generate_unique_connection_name(None, DBType.SQLITE, [_profile("x", "sqlite Database")]) == (
        "sqlite Database (2)"
    )


def test_complete_validation_suggests_alternative() -> None:
    existing = [_profile("id-1", "Analytics")]

    check = validate_connection_name_complete("Analytics", existing)

    assert not check.is_valid
    assert check.error == 'A connection with the name "Analytics" already exists'
    assert check.suggestion == "Analytics (2)"
    assert validate_connection_name_complete("Analytics", existing, exclude_id="id-1").is_valid
    assert validate_connection_name_complete("db", existing).error == (
        "Connection name is too generic, please be more descriptive"
    )


def test_find_connection_helpers() -> None:
    existing = [_profile("id-1", "Analytics"), _profile("id-2", "Billing")]

    assert find_connection_by_id("id-2", existing) == existing[1]
    assert find_connection_by_id("", existing) is None
    assert find_connection_by_name("billing", existing) == existing[1]
    assert find_connection_by_name("missing", existing) is None
