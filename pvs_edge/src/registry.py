"""
PVS gateway measurement registry -- single source of truth for raw fields.

Maps every catalogued raw field identifier to a coercion rule and a
classification (metric, property, timestamp, ignored).  The gateway has
exposed two incompatible APIs over its firmware history, so the registry is
split into one table per API generation and the caller picks the table that
matches the fetch path that produced the fields:

- ``LEGACY``: ``/cgi-bin/dl_cgi?Command=DeviceList``.  Flat per-device maps
  with all-caps property keys (``SERIAL``, ``MODEL``) and snake-case metrics
  (``p_3phsum_kw``).
- ``VARSERVER``: ``/vars``.  Path-like system identifiers
  (``/sys/livedata/pv_p``) and camel-case device field names shared across
  device categories (``freqHz`` on both inverters and meters).

Unknown identifiers are not an error: gateway firmware routinely adds fields
that are not catalogued yet, and those simply classify as ignored.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Accept only plain ASCII decimal text in numeric coercions

TODO:
- None
"""

from __future__ import annotations

import enum
import math
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from pvs_edge.src.errors import CoercionError

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ApiGeneration(enum.Enum):
    """Gateway API generation that produced a raw field."""

    LEGACY = "legacy"
    VARSERVER = "varserver"


class Kind(enum.Enum):
    """Classification of a raw field."""

    METRIC = "metric"
    PROPERTY = "property"
    TIMESTAMP = "timestamp"
    IGNORED = "ignored"


_DECIMAL_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)
"""Plain ASCII decimal notation; rejects ``1_000``, non-ASCII digits, nan/inf."""


def _to_str(raw: str) -> str:
    return raw


def _decimal_text(raw: str) -> str:
    text = raw.strip()
    if not _DECIMAL_RE.fullmatch(text):
        raise CoercionError(f"not a decimal number: {raw!r}")
    return text


def _to_float(raw: str) -> float:
    value = float(_decimal_text(raw))
    if not math.isfinite(value):
        raise CoercionError(f"not a finite number: {raw!r}")
    return value


def _to_int(raw: str) -> int:
    text = _decimal_text(raw)
    try:
        return int(text)
    except ValueError:
        pass
    # Some firmwares format integer counters as "12.0"; truncate toward zero.
    try:
        number = Decimal(text)
    except InvalidOperation as exc:
        raise CoercionError(f"not an integer: {raw!r}") from exc
    if not number.is_finite():
        raise CoercionError(f"not a finite integer: {raw!r}")
    return int(number)


class Coercion(enum.Enum):
    """Conversion applied to a raw string value."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"

    def convert(self, raw: str) -> str | int | float:
        """Apply this coercion to *raw*.

        Raises:
            CoercionError: If *raw* cannot be converted.
        """
        return _CONVERTERS[self](raw)


_CONVERTERS: dict[Coercion, Callable[[str], str | int | float]] = {
    Coercion.STRING: _to_str,
    Coercion.INTEGER: _to_int,
    Coercion.FLOAT: _to_float,
}

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MeasurementSpec:
    """Definition of a single raw gateway field.

    Attributes:
        identifier: Raw field identifier, unique within one registry.
        coercion: Conversion applied to the raw string value.
        kind: How the field is used (series value, tag, time, or dropped).
        tag: Tag key used when *kind* is ``PROPERTY``.  Defaults to the
            identifier itself.
        description: Free-text description, including the unit for metrics.
    """

    identifier: str
    coercion: Coercion
    kind: Kind
    tag: str = ""
    description: str = ""

    def __post_init__(self) -> None:  # noqa: D105
        if not self.tag:
            # frozen=True requires object.__setattr__
            object.__setattr__(self, "tag", self.identifier)


class Registry:
    """Lookup table of :class:`MeasurementSpec` for one API generation.

    Args:
        generation: The API generation this table describes.
        specs: Field definitions.  Identifiers must be unique.

    Raises:
        ValueError: If an identifier appears twice in *specs*, or a metric
            is declared with string coercion (series values are numeric).
    """

    def __init__(
        self, generation: ApiGeneration, specs: Iterable[MeasurementSpec]
    ) -> None:
        self.generation = generation
        self._specs: dict[str, MeasurementSpec] = {}
        for spec in specs:
            if spec.identifier in self._specs:
                msg = (
                    f"Duplicate identifier '{spec.identifier}' in "
                    f"{generation.value} registry"
                )
                raise ValueError(msg)
            if spec.kind is Kind.METRIC and spec.coercion is Coercion.STRING:
                msg = f"Metric '{spec.identifier}' must use a numeric coercion"
                raise ValueError(msg)
            self._specs[spec.identifier] = spec

    def classify(self, identifier: str) -> MeasurementSpec:
        """Return the spec for *identifier*, or an ignored spec if unknown."""
        spec = self._specs.get(identifier)
        if spec is None:
            return MeasurementSpec(identifier, Coercion.STRING, Kind.IGNORED)
        return spec

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._specs

    def __iter__(self) -> Iterator[MeasurementSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)


def _metric(identifier: str, coercion: Coercion, description: str = "") -> MeasurementSpec:
    return MeasurementSpec(identifier, coercion, Kind.METRIC, description=description)


def _prop(identifier: str, tag: str = "", description: str = "") -> MeasurementSpec:
    return MeasurementSpec(
        identifier, Coercion.STRING, Kind.PROPERTY, tag=tag, description=description
    )


def _ignored(identifier: str, description: str = "") -> MeasurementSpec:
    return MeasurementSpec(
        identifier, Coercion.STRING, Kind.IGNORED, description=description
    )


_I = Coercion.INTEGER
_F = Coercion.FLOAT

# ---------------------------------------------------------------------------
# Legacy DeviceList fields
# ---------------------------------------------------------------------------

_LEGACY_SPECS: list[MeasurementSpec] = [
    _prop("DESCR", description='e.g. "Inverter 450051826006667"'),
    _prop("DEVICE_TYPE", description='"PVS", "Power Meter", "Inverter"'),
    _prop("MODEL", description='e.g. "PVS5M0400p", "AC_Module_Type_D"'),
    _prop("SERIAL"),
    _prop("STATE", description='"working", "error"'),
    _prop("TYPE", description='e.g. "PVS5-METER-P", "SOLARBRIDGE"'),
    _prop("origin", description='e.g. "data_logger"'),
    MeasurementSpec(
        "DATATIME",
        Coercion.STRING,
        Kind.TIMESTAMP,
        description='Measurement time, "2020,11,30,04,25,00"',
    ),
    _ignored("CAL0", "Calibration-reference CT sensor size"),
    _ignored("CURTIME", "Gateway wall clock at response time"),
    _ignored("DETAIL"),
    _ignored("HWVER"),
    _ignored("ISDETAIL"),
    _ignored("MOD_SN"),
    _ignored("NMPLT_SKU"),
    _ignored("OPERATION"),
    _ignored("PORT"),
    _ignored("STATEDESCR"),
    _ignored("SWVER"),
    _metric("ct_scl_fctr", _I, "CT sensor size (A)"),
    _metric("dl_comm_err", _I, "Number of comms errors"),
    _metric("dl_cpu_load", _F, "1-minute load average"),
    _metric("dl_err_count", _I, "Errors detected since last report"),
    _metric("dl_flash_avail", _I, "Free flash space (KiB)"),
    _metric("dl_mem_used", _I, "Memory used (KiB)"),
    _metric("dl_scan_time", _I),
    _metric("dl_skipped_scans", _I),
    _metric("dl_untransmitted", _I, "Untransmitted events/records"),
    _metric("dl_uptime", _I, "Seconds since boot"),
    _metric("freq_hz", _F, "Operating frequency (Hz)"),
    _metric("i_3phsum_a", _F, "AC current (A)"),
    _metric("i_mppt1_a", _F, "DC current (A)"),
    _metric("ltea_3phsum_kwh", _F, "Total net energy (kWh)"),
    _metric("net_ltea_3phsum_kwh", _F, "Net lifetime energy (kWh)"),
    _metric("p_3phsum_kw", _F, "Average real power (kW)"),
    _metric("p_mpptsum_kw", _F, "DC power (kW)"),
    _metric("panid", _I),
    _metric("q_3phsum_kvar", _F, "Reactive power (kVAr)"),
    _metric("s_3phsum_kva", _F, "Apparent power (kVA)"),
    _metric("stat_ind", _I),
    _metric("t_htsnk_degc", _F, "Heatsink temperature (C)"),
    _metric("tot_pf_rto", _F, "Power factor ratio"),
    _metric("v_mppt1_v", _F, "DC voltage (V)"),
    _metric("vln_3phavg_v", _F, "AC voltage (V)"),
]

# ---------------------------------------------------------------------------
# Varserver (/vars) fields
#
# System-wide fields are keyed by their full path; device fields are keyed by
# the bare field name because the same names repeat under every category.
# ---------------------------------------------------------------------------

_VARSERVER_SPECS: list[MeasurementSpec] = [
    MeasurementSpec(
        "/sys/livedata/time",
        Coercion.INTEGER,
        Kind.TIMESTAMP,
        description="Livedata sample time (epoch seconds)",
    ),
    _metric("/sys/livedata/pv_p", _F, "PV production power (kW)"),
    _metric("/sys/livedata/pv_en", _F, "PV lifetime energy (kWh)"),
    _metric("/sys/livedata/net_p", _F, "Net grid power (kW)"),
    _metric("/sys/livedata/net_en", _F, "Net lifetime grid energy (kWh)"),
    _metric("/sys/livedata/site_load_p", _F, "Site consumption power (kW)"),
    _metric("/sys/livedata/site_load_en", _F, "Site lifetime consumption (kWh)"),
    _metric("/sys/livedata/ess_p", _F, "Storage power (kW)"),
    _metric("/sys/livedata/ess_en", _F, "Storage lifetime energy (kWh)"),
    _metric("/sys/livedata/soc", _F, "Storage state of charge"),
    _metric("/sys/livedata/backupTimeRemaining", _I, "Backup time remaining (min)"),
    _prop("sn", tag="serial", description="Device serial number"),
    _prop("prodMdlNm", tag="model", description="Product model name"),
    MeasurementSpec(
        "msmtEps",
        Coercion.STRING,
        Kind.TIMESTAMP,
        description='Measurement time, "2024-03-12T21:25:08Z"',
    ),
    _ignored("hwVer"),
    _ignored("swVer"),
    _ignored("mdlNm"),
    _ignored("typeId"),
    _metric("freqHz", _F, "Operating frequency (Hz)"),
    _metric("ltea3phsumKwh", _F, "Lifetime energy (kWh)"),
    _metric("p3phsumKw", _F, "Average real power (kW)"),
    _metric("q3phsumKvar", _F, "Reactive power (kVAr)"),
    _metric("s3phsumKva", _F, "Apparent power (kVA)"),
    _metric("totPfRto", _F, "Power factor ratio"),
    _metric("vln3phavgV", _F, "AC voltage (V)"),
    _metric("i3phsumA", _F, "AC current (A)"),
    _metric("pMppt1Kw", _F, "DC power (kW)"),
    _metric("vMppt1V", _F, "DC voltage (V)"),
    _metric("iMppt1A", _F, "DC current (A)"),
    _metric("tHtsnkDegc", _F, "Heatsink temperature (C)"),
    _metric("ctSclFctr", _I, "CT sensor size (A)"),
    _metric("netLtea3phsumKwh", _F, "Net lifetime energy (kWh)"),
    _metric("negLtea3phsumKwh", _F, "Lifetime exported energy (kWh)"),
    _metric("posLtea3phsumKwh", _F, "Lifetime imported energy (kWh)"),
    _metric("i1A", _F, "Leg 1 current (A)"),
    _metric("i2A", _F, "Leg 2 current (A)"),
    _metric("v1nV", _F, "Leg 1 to neutral voltage (V)"),
    _metric("v2nV", _F, "Leg 2 to neutral voltage (V)"),
    _metric("v12V", _F, "Leg to leg voltage (V)"),
    _metric("p1Kw", _F, "Leg 1 real power (kW)"),
    _metric("p2Kw", _F, "Leg 2 real power (kW)"),
]

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

LEGACY_REGISTRY = Registry(ApiGeneration.LEGACY, _LEGACY_SPECS)
"""Fields of the legacy DeviceList endpoint."""

VARSERVER_REGISTRY = Registry(ApiGeneration.VARSERVER, _VARSERVER_SPECS)
"""Fields of the varserver ``/vars`` endpoint."""

_REGISTRIES: dict[ApiGeneration, Registry] = {
    ApiGeneration.LEGACY: LEGACY_REGISTRY,
    ApiGeneration.VARSERVER: VARSERVER_REGISTRY,
}


def registry_for(generation: ApiGeneration) -> Registry:
    """Return the registry that classifies fields from *generation*."""
    return _REGISTRIES[generation]
