"""
Measure catalogue -- diagnostic listing of every field the gateway exposes.

Fetches one payload set from the gateway (no sink, no normalization) and
prints every identifier seen together with its current registry
classification, coercion, and a few example values.  Device-scoped varserver
identifiers are collapsed to their bare field name, the same key the
registry is looked up with.  Identifiers the registry does not know are shown
as ``unknown``: those are the candidates to catalogue in ``registry.py`` after
a firmware update.

Usage:
    pvs-edge show-measures

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pvs_edge.src.fields import legacy_fields, varserver_fields
from pvs_edge.src.gateway import GatewayClient
from pvs_edge.src.orchestrator import varserver_queries
from pvs_edge.src.paths import parse
from pvs_edge.src.registry import ApiGeneration, Registry, registry_for
from pvs_edge.src.session import SessionManager

if TYPE_CHECKING:
    from pvs_edge.src.config import EdgeSettings
    from pvs_edge.src.models import RawField

MAX_EXAMPLES = 4
"""Distinct example values kept per identifier."""


def catalogue(raw_fields: Iterable[RawField]) -> dict[str, list[str]]:
    """Map each registry lookup key to up to MAX_EXAMPLES distinct values.

    Returns:
        Dict sorted by identifier.
    """
    examples: dict[str, list[str]] = {}
    for raw in raw_fields:
        path = parse(raw.identifier) if raw.group is None else None
        key = path.field if path is not None else raw.identifier
        values = examples.setdefault(key, [])
        if raw.value not in values and len(values) < MAX_EXAMPLES:
            values.append(raw.value)
    return dict(sorted(examples.items()))


def render(examples: dict[str, list[str]], registry: Registry) -> list[str]:
    """Format one aligned line per identifier: name, kind, coercion, examples."""
    if not examples:
        return []
    width = max(len(identifier) for identifier in examples)
    lines = []
    for identifier, values in examples.items():
        spec = registry.classify(identifier)
        kind = spec.kind.value if identifier in registry else "unknown"
        lines.append(
            f"{identifier:<{width}}  {kind:<9}  {spec.coercion.value:<7}  "
            f"{json.dumps(values)}"
        )
    return lines


async def fetch_fields(settings: EdgeSettings) -> list[RawField]:
    """Fetch one raw field set from the gateway described by *settings*."""
    generation = ApiGeneration(settings.api_generation)
    async with GatewayClient(
        settings.pvs_host, timeout_s=settings.request_timeout_s
    ) as gateway:
        if generation is ApiGeneration.LEGACY:
            return list(legacy_fields(await gateway.fetch_device_list()))

        session = await SessionManager(gateway).authenticate(settings.credential())
        raw_fields: list[RawField] = []
        for _source, match in varserver_queries(settings.device_categories):
            payload = await gateway.fetch_vars(match, session=session)
            raw_fields.extend(varserver_fields(payload))
        return raw_fields


async def show_measures(settings: EdgeSettings) -> None:
    """Print the measure catalogue of the configured gateway to stdout."""
    registry = registry_for(ApiGeneration(settings.api_generation))
    raw_fields = await fetch_fields(settings)
    for line in render(catalogue(raw_fields), registry):
        print(line)
