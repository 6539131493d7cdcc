"""
Unit tests for edge collector configuration (EdgeSettings).

Tests verify:
- Config loads from environment variables with correct defaults.
- PVS_SERIAL is required for the varserver API only.
- Numeric constraints are enforced (poll interval, timeout, attempts, backoff).
- DEVICE_CATEGORIES entries are single path segments.
- Derived credential and poll options.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from pathlib import Path

import pytest
from pvs_edge.src.config import EdgeSettings
from pvs_edge.src.registry import ApiGeneration
from pydantic import ValidationError


class TestEdgeSettingsLoadsFromEnv:
    """Config loads all values from environment variables."""

    def test_loads_all_env_vars(self, env_vars_full: dict[str, str]) -> None:
        """All env vars are read and assigned correctly."""
        settings = EdgeSettings()

        assert settings.pvs_host == env_vars_full["PVS_HOST"]
        assert settings.pvs_serial == env_vars_full["PVS_SERIAL"]
        assert settings.api_generation == "varserver"
        assert settings.device_categories == ["inverter", "meter", "ess"]
        assert settings.poll_interval_s == 30
        assert settings.request_timeout_s == 5.5
        assert settings.fetch_attempts == 4
        assert settings.retry_backoff_s == 0.5
        assert settings.influx_url == env_vars_full["INFLUX_URL"]
        assert settings.influx_token == env_vars_full["INFLUX_TOKEN"]
        assert settings.influx_database == env_vars_full["INFLUX_DATABASE"]
        assert settings.dry_run is True
        assert settings.verbose is False

    def test_defaults_applied_when_optional_vars_missing(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        """Optional variables use default values when not set."""
        settings = EdgeSettings()

        assert settings.pvs_serial == env_vars_required_only["PVS_SERIAL"]
        assert settings.pvs_host == "pvs-gateway.local"
        assert settings.api_generation == "varserver"
        assert settings.device_categories == ["inverter", "meter"]
        assert settings.poll_interval_s == 60
        assert settings.request_timeout_s == 10.0
        assert settings.fetch_attempts == 3
        assert settings.retry_backoff_s == 1.0
        assert settings.influx_url == "http://localhost:8181"
        assert settings.influx_token == ""
        assert settings.influx_database == "pvs"
        assert settings.dry_run is False
        assert settings.verbose is False

    def test_loads_from_dotenv_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A .env file in the working directory is honoured."""
        (tmp_path / ".env").write_text("PVS_SERIAL=ABCDE\nPVS_HOST=10.0.0.9\n")
        monkeypatch.chdir(tmp_path)

        settings = EdgeSettings()

        assert settings.pvs_serial == "ABCDE"
        assert settings.pvs_host == "10.0.0.9"


class TestSerialRequirement:
    """The gateway serial is the varserver login password."""

    def test_missing_serial_for_varserver_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            EdgeSettings()
        assert "PVS_SERIAL must be set" in str(exc_info.value)

    def test_blank_serial_for_varserver_raises(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PVS_SERIAL", "   ")
        with pytest.raises(ValidationError):
            EdgeSettings()

    def test_legacy_needs_no_serial(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_GENERATION", "legacy")
        settings = EdgeSettings()
        assert settings.api_generation == "legacy"

    def test_unknown_generation_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PVS_SERIAL", "12345")
        monkeypatch.setenv("API_GENERATION", "cloud")
        with pytest.raises(ValidationError) as exc_info:
            EdgeSettings()
        assert "api_generation" in str(exc_info.value).lower()


class TestNumericConstraints:
    """Numeric fields are range checked."""

    @pytest.mark.parametrize(
        ("var", "value", "message"),
        [
            ("POLL_INTERVAL_S", "0", "POLL_INTERVAL_S must be >= 1"),
            ("REQUEST_TIMEOUT_S", "0", "REQUEST_TIMEOUT_S must be > 0"),
            ("REQUEST_TIMEOUT_S", "-1.5", "REQUEST_TIMEOUT_S must be > 0"),
            ("FETCH_ATTEMPTS", "0", "FETCH_ATTEMPTS must be >= 1 and <= 10"),
            ("FETCH_ATTEMPTS", "11", "FETCH_ATTEMPTS must be >= 1 and <= 10"),
            ("RETRY_BACKOFF_S", "-0.1", "RETRY_BACKOFF_S must be >= 0"),
        ],
    )
    def test_out_of_range_rejected(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        var: str,
        value: str,
        message: str,
    ) -> None:
        monkeypatch.setenv(var, value)
        with pytest.raises(ValidationError) as exc_info:
            EdgeSettings()
        assert message in str(exc_info.value)

    @pytest.mark.parametrize(
        ("var", "value"),
        [
            ("POLL_INTERVAL_S", "1"),
            ("FETCH_ATTEMPTS", "1"),
            ("FETCH_ATTEMPTS", "10"),
            ("RETRY_BACKOFF_S", "0"),
        ],
    )
    def test_boundaries_accepted(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        var: str,
        value: str,
    ) -> None:
        monkeypatch.setenv(var, value)
        EdgeSettings()


class TestDeviceCategories:
    """DEVICE_CATEGORIES is a JSON list of path segments."""

    @pytest.mark.parametrize("raw", ['["inverter/1"]', '[""]'])
    def test_invalid_segments_rejected(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        raw: str,
    ) -> None:
        monkeypatch.setenv("DEVICE_CATEGORIES", raw)
        with pytest.raises(ValidationError) as exc_info:
            EdgeSettings()
        assert "single path segments" in str(exc_info.value)

    def test_empty_list_fetches_livedata_only(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("DEVICE_CATEGORIES", "[]")
        assert EdgeSettings().poll_options().device_categories == ()


class TestDerivedValues:
    """credential() and poll_options()."""

    def test_credential(self, env_vars_full: dict[str, str]) -> None:
        credential = EdgeSettings().credential()
        assert credential.serial == env_vars_full["PVS_SERIAL"]
        assert credential.suffix == "C1876"

    def test_poll_options(self, env_vars_full: dict[str, str]) -> None:
        options = EdgeSettings().poll_options()

        assert options.generation is ApiGeneration.VARSERVER
        assert options.device_categories == ("inverter", "meter", "ess")
        assert options.fetch_attempts == 4
        assert options.retry_backoff_s == 0.5
        assert options.dry_run is True
        assert options.verbose is False

    def test_legacy_poll_options(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_GENERATION", "legacy")
        assert EdgeSettings().poll_options().generation is ApiGeneration.LEGACY
