"""
Tests for `domain/time.py`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from domain.time import from_epoch_seconds, parse_utc_datetime, require_utc_timestamp, to_iso_utc


def test_parse_utc_datetime_handles_supabase_formats() -> None:
    expected = datetime(2025, 3, 1, 10, 30, tzinfo=timezone.utc)

    assert parse_utc_datetime("2025-03-01T10:30:00Z") == expected
    assert parse_utc_datetime("2025-03-01T10:30:00+00:00") == expected
    assert parse_utc_datetime("2025-03-01T12:30:00+02:00") == expected
    assert parse_utc_datetime("2025-03-01T10:30:00") == expected


def test_parse_utc_datetime_returns_none_for_missing_or_garbage() -> None:
    assert parse_utc_datetime(None) is None
    assert parse_utc_datetime("") is None
    assert parse_utc_datetime("not a date") is None
    assert parse_utc_datetime(12345) is None


def test_to_iso_utc_rejects_non_utc() -> None:
    with pytest.raises(ValueError):
        to_iso_utc(datetime(2025, 1, 1), name="reserved_until")
    with pytest.raises(ValueError):
        require_utc_timestamp("x", datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=-5))))

    assert to_iso_utc(datetime(2025, 1, 1, tzinfo=timezone.utc), name="x") == "2025-01-01T00:00:00+00:00"


def test_from_epoch_seconds() -> None:
    assert from_epoch_seconds(0) is None
    assert from_epoch_seconds(None) is None
    assert from_epoch_seconds(1735689600) == "2025-01-01T00:00:00+00:00"
