"""
Runner runtime: run loop, deferral handling and telemetry.
"""

from .runner import Runner
from .runner_internals import dump_paused_run, load_paused_run
from .runner_types import RunnerConfig, RunState
from .telemetry import (
    InMemoryTelemetrySink,
    NullTelemetrySink,
    OpenTelemetrySink,
    TelemetryEvent,
    TelemetrySink,
    TelemetrySpan,
)

__all__ = [
    "InMemoryTelemetrySink",
    "NullTelemetrySink",
    "OpenTelemetrySink",
    "RunState",
    "Runner",
    "RunnerConfig",
    "TelemetryEvent",
    "TelemetrySink",
    "TelemetrySpan",
    "dump_paused_run",
    "load_paused_run",
]
