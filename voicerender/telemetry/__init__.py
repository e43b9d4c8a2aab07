"""Telemetry helpers for render logging."""

from .logger import RunLogger

__all__ = ["RunLogger"]
