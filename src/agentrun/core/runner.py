"""
Canonical runner assembled from focused mixins.
"""

from __future__ import annotations

from .runner_api import RunnerAPIMixin
from .runner_deferral import RunnerDeferralMixin
from .runner_execution import RunnerExecutionMixin
from .runner_internals import RunnerInternalsMixin
from .runner_types import RunnerConfig


class Runner(
    RunnerExecutionMixin,
    RunnerDeferralMixin,
    RunnerInternalsMixin,
    RunnerAPIMixin,
):
    """
    Canonical runtime runner for agents.

    Composition:
        - `RunnerAPIMixin`: public API (`run`, `run_stream`, `iter`, `resume`)
        - `RunnerExecutionMixin`: the run loop and tool batch processing
        - `RunnerDeferralMixin`: resolution of deferred tool calls on resume
        - `RunnerInternalsMixin`: request/snapshot assembly and telemetry helpers
    """


__all__ = ["Runner", "RunnerConfig"]
