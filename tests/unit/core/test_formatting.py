"""Unit tests for timestamp, duration, and size formatting."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.formatting import (
    file_timestamp,
    format_duration,
    format_size,
    format_timestamp,
    parse_timestamp,
)

_MOMENT = datetime(2024, 3, 5, 7, 8, 9, 123456, tzinfo=timezone.utc)


def test_format_timestamp_uses_millisecond_zulu_form() -> None:
    """Timestamps should render with millisecond precision and a Z suffix."""
    assert format_timestamp(_MOMENT) == "2024-03-05T07:08:09.123Z"


def test_file_timestamp_has_no_colons_or_dots() -> None:
    """File timestamps should be safe in file names."""
    assert file_timestamp(_MOMENT) == "2024-03-05T07-08-09-123Z"


def test_parse_timestamp_accepts_zulu_and_offsets() -> None:
    """Zulu and offset forms should parse to the same instant."""
    zulu = parse_timestamp("2024-03-05T07:08:09Z")
    offset = parse_timestamp("2024-03-05 09:08:09+02:00")

    assert zulu == offset


def test_parse_timestamp_treats_naive_values_as_utc() -> None:
    """Naive timestamps should be interpreted as UTC."""
    parsed = parse_timestamp("2024-03-05T07:08:09")

    assert parsed is not None and parsed.utcoffset() == timedelta(0)


def test_parse_timestamp_returns_none_for_garbage() -> None:
    """Unparseable values should return None instead of raising."""
    assert (parse_timestamp("yesterday"), parse_timestamp(None), parse_timestamp(42)) == (
        None,
        None,
        None,
    )


def test_format_duration_switches_units() -> None:
    """Durations should render seconds, minutes, and hours."""
    assert [format_duration(1.5), format_duration(125), format_duration(3725)] == [
        "1.50s",
        "2m 5s",
        "1h 2m 5s",
    ]


def test_format_size_uses_binary_units() -> None:
    """Sizes should render bytes plainly and larger values with two decimals."""
    assert [format_size(512), format_size(2048), format_size(3 * 1024 * 1024)] == [
        "512 B",
        "2.00 KB",
        "3.00 MB",
    ]
