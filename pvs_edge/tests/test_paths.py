"""
Tests for the device path parser.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from pvs_edge.src.paths import DevicePath, bare_name, format_index, parse


class TestParseDevicePaths:
    """Device-scoped identifiers decode into category, index and field."""

    @pytest.mark.parametrize(
        ("prefix", "category", "index", "field"),
        [
            ("/sys", "inverter", "11", "p3phsumKw"),
            ("/sys", "meter", "0", "freqHz"),
            ("/sys", "ess", "3", "soc"),
            ("/other/prefix", "inverter", "007", "sn"),
            ("", "meter", "A1", "v12V"),
            ("/sys", "devices", "2", "devices"),
        ],
    )
    def test_round_trip(self, prefix: str, category: str, index: str, field: str) -> None:
        identifier = f"{prefix}/devices/{category}/{index}/{field}"
        assert parse(identifier) == DevicePath(category, index, field)

    def test_bare_relative_path(self) -> None:
        assert parse("devices/inverter/1/sn") == DevicePath("inverter", "1", "sn")


class TestParseNonDevicePaths:
    """Anything else is not device-scoped."""

    @pytest.mark.parametrize(
        "identifier",
        [
            "/sys/livedata/pv_p",
            "/sys/livedata/time",
            "SERIAL",
            "p_3phsum_kw",
            "/sys/devices/inverter/11",
            "/sys/devices/inverter/11/",
            "/sys/devices/inverter/11/nested/field",
            "/sys/mydevices/inverter/11/sn",
            "",
        ],
    )
    def test_returns_none(self, identifier: str) -> None:
        assert parse(identifier) is None


class TestFormatIndex:
    """Device index rendering for tags."""

    @pytest.mark.parametrize(
        ("index", "expected"),
        [("0", "00"), ("1", "01"), ("11", "11"), ("123", "123"), ("07", "07")],
    )
    def test_numeric_indices_are_zero_padded(self, index: str, expected: str) -> None:
        assert format_index(index) == expected

    def test_non_numeric_index_is_opaque(self) -> None:
        assert format_index("a") == "a"
        assert format_index("A1") == "A1"


class TestBareName:
    """Series names are the last path segment."""

    def test_path_identifier(self) -> None:
        assert bare_name("/sys/livedata/pv_p") == "pv_p"

    def test_flat_identifier(self) -> None:
        assert bare_name("p_3phsum_kw") == "p_3phsum_kw"
