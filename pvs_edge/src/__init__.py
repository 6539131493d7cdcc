"""
Edge collector package for the PVS gateway-to-InfluxDB pipeline.

Polls a SunPower PVS monitoring gateway on the local LAN, normalizes the flat
key/value telemetry it exposes into tagged time-series points, and writes them
to InfluxDB.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
