"""
Edge collector configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded credentials.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from pvs_edge.src.models import GatewayCredential
from pvs_edge.src.orchestrator import PollOptions
from pvs_edge.src.registry import ApiGeneration


class EdgeSettings(BaseSettings):
    """Edge collector configuration for the PVS-to-InfluxDB pipeline.

    All values are loaded from environment variables. Optional variables
    have sensible defaults.

    Attributes:
        pvs_host: Gateway hostname / IP address on the local LAN.
        pvs_serial: Gateway serial number (or its last five characters),
            the varserver login password.
        api_generation: ``"varserver"`` (current firmware) or ``"legacy"``
            (``dl_cgi`` DeviceList).
        device_categories: Varserver device categories to fetch.
        poll_interval_s: Seconds between poll cycles.
        request_timeout_s: Per-request gateway timeout in seconds.
        fetch_attempts: Attempts per request on transient failures.
        retry_backoff_s: Initial backoff between attempts.
        influx_url: InfluxDB server URL.
        influx_token: InfluxDB API token.
        influx_database: InfluxDB database / bucket.
        dry_run: Fetch and normalize without writing.
        verbose: Debug logging and per-point logs.
    """

    pvs_host: str = "pvs-gateway.local"
    pvs_serial: str = ""
    api_generation: Literal["varserver", "legacy"] = "varserver"
    device_categories: list[str] = ["inverter", "meter"]
    poll_interval_s: int = 60
    request_timeout_s: float = 10.0
    fetch_attempts: int = 3
    retry_backoff_s: float = 1.0
    influx_url: str = "http://localhost:8181"
    influx_token: str = ""
    influx_database: str = "pvs"
    dry_run: bool = False
    verbose: bool = False

    @model_validator(mode="after")
    def _serial_required_for_varserver(self) -> "EdgeSettings":
        """The varserver API cannot log in without the gateway serial."""
        if self.api_generation == "varserver" and not self.pvs_serial.strip():
            raise ValueError(
                "PVS_SERIAL must be set when API_GENERATION is 'varserver'"
            )
        return self

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_positive(cls, v: int) -> int:
        """Validate poll interval is at least one second."""
        if v < 1:
            raise ValueError("POLL_INTERVAL_S must be >= 1")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def request_timeout_must_be_positive(cls, v: float) -> float:
        """Validate request timeout is positive."""
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("fetch_attempts")
    @classmethod
    def fetch_attempts_must_be_valid(cls, v: int) -> int:
        """Validate fetch attempts is between 1 and 10."""
        if v < 1 or v > 10:
            raise ValueError("FETCH_ATTEMPTS must be >= 1 and <= 10")
        return v

    @field_validator("retry_backoff_s")
    @classmethod
    def retry_backoff_must_be_non_negative(cls, v: float) -> float:
        """Validate retry backoff is non-negative."""
        if v < 0:
            raise ValueError("RETRY_BACKOFF_S must be >= 0")
        return v

    @field_validator("device_categories")
    @classmethod
    def device_categories_must_be_path_segments(cls, v: list[str]) -> list[str]:
        """Validate each category is a single non-empty path segment."""
        for category in v:
            if not category or "/" in category:
                raise ValueError(
                    f"DEVICE_CATEGORIES entries must be single path segments "
                    f"(got: {category!r})"
                )
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def credential(self) -> GatewayCredential:
        """Build the gateway credential from PVS_SERIAL."""
        return GatewayCredential(serial=self.pvs_serial)

    def poll_options(self) -> PollOptions:
        """Build the orchestrator options from these settings."""
        return PollOptions(
            generation=ApiGeneration(self.api_generation),
            device_categories=tuple(self.device_categories),
            fetch_attempts=self.fetch_attempts,
            retry_backoff_s=self.retry_backoff_s,
            dry_run=self.dry_run,
            verbose=self.verbose,
        )
