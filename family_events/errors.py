# family_events/errors.py
"""
Exception types raised across the pipeline.

Per-record and per-source failures are caught and counted by the stage
that hit them; only these types cross module boundaries on purpose.
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for all family_events errors."""


class ConfigError(PipelineError):
    """Required configuration is missing (raised lazily, never at import)."""


class RecordValidationError(PipelineError):
    """A scraped payload could not be converted into a RawRecord."""

    def __init__(self, message: str, *, source: str | None = None, external_id: str | None = None) -> None:
        super().__init__(message)
        self.source = source
        self.external_id = external_id


class UnknownSourceError(PipelineError):
    """A manual trigger named a source that is not registered."""

    def __init__(self, source: str, available: list[str]) -> None:
        super().__init__(
            f"Unknown source: {source}. Available sources: {', '.join(available)}"
        )
        self.source = source
        self.available = available


class RunInProgressError(PipelineError):
    """A run was triggered while another run holds the run lock."""

    def __init__(self, active_run_id: str | None) -> None:
        super().__init__(f"A pipeline run is already in progress (run_id={active_run_id})")
        self.active_run_id = active_run_id


class GeocodingError(PipelineError):
    """The geocoding provider failed (timeout, transport, quota); not a miss."""
