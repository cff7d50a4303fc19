"""Telemetry cache and polling client for oxygen-plant monitoring consoles."""

__version__ = "0.3.0"
