"""
Telemetry sinks for runner observability.

`NullTelemetrySink` is the default. `InMemoryTelemetrySink` keeps everything for
assertions in tests. `OpenTelemetrySink` forwards to the global OpenTelemetry
tracer/meter providers when `opentelemetry-api`/`opentelemetry-sdk` are installed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..llms.types import JSONValue

Attributes = dict[str, JSONValue]


@dataclass(frozen=True, slots=True)
class TelemetryEvent:
    name: str
    timestamp_ms: int
    attributes: Attributes = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TelemetrySpan:
    """
    Started span handle.

    Attributes:
        name: Span name.
        started_at_ms: Span start timestamp.
        attributes: Initial span attributes.
        native_span: Backend span object, if any.
    """

    name: str
    started_at_ms: int
    attributes: Attributes = field(default_factory=dict)
    native_span: Any = None


@dataclass(frozen=True, slots=True)
class SpanRecord:
    name: str
    started_at_ms: int
    ended_at_ms: int
    status: str
    error: str | None
    attributes: Attributes


@dataclass(frozen=True, slots=True)
class MetricPoint:
    name: str
    value: float
    attributes: Attributes
    timestamp_ms: int


class TelemetrySink(Protocol):
    """Protocol implemented by telemetry backends. Sinks must never raise."""

    def record_event(self, event: TelemetryEvent) -> None: ...

    def start_span(self, name: str, *, attributes: Attributes | None = None) -> TelemetrySpan | None:
        """Start a span; `None` when the backend has no spans."""
        ...

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: Attributes | None = None,
    ) -> None:
        """End a span with a terminal status (`ok`, `error`, `paused`, `cancelled`)."""
        ...

    def increment_counter(self, name: str, value: int = 1, *, attributes: Attributes | None = None) -> None: ...

    def record_histogram(self, name: str, value: float, *, attributes: Attributes | None = None) -> None: ...


@dataclass(slots=True)
class NullTelemetrySink:
    """Drops everything. Used when a runner is built without a sink."""

    def record_event(self, event: TelemetryEvent) -> None:
        return None

    def start_span(self, name: str, *, attributes: Attributes | None = None) -> TelemetrySpan | None:
        return None

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: Attributes | None = None,
    ) -> None:
        return None

    def increment_counter(self, name: str, value: int = 1, *, attributes: Attributes | None = None) -> None:
        return None

    def record_histogram(self, name: str, value: float, *, attributes: Attributes | None = None) -> None:
        return None


@dataclass(slots=True)
class InMemoryTelemetrySink:
    """Test/debug telemetry sink that stores emitted measurements."""

    _events: list[TelemetryEvent] = field(default_factory=list)
    _spans: list[SpanRecord] = field(default_factory=list)
    _counters: list[MetricPoint] = field(default_factory=list)
    _histograms: list[MetricPoint] = field(default_factory=list)

    def record_event(self, event: TelemetryEvent) -> None:
        self._events.append(event)

    def start_span(self, name: str, *, attributes: Attributes | None = None) -> TelemetrySpan:
        return TelemetrySpan(name=name, started_at_ms=now_ms(), attributes=dict(attributes or {}))

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: Attributes | None = None,
    ) -> None:
        if span is None:
            return
        self._spans.append(
            SpanRecord(
                name=span.name,
                started_at_ms=span.started_at_ms,
                ended_at_ms=now_ms(),
                status=status,
                error=error,
                attributes={**span.attributes, **dict(attributes or {})},
            )
        )

    def increment_counter(self, name: str, value: int = 1, *, attributes: Attributes | None = None) -> None:
        self._counters.append(MetricPoint(name, int(value), dict(attributes or {}), now_ms()))

    def record_histogram(self, name: str, value: float, *, attributes: Attributes | None = None) -> None:
        self._histograms.append(MetricPoint(name, float(value), dict(attributes or {}), now_ms()))

    def events(self, name: str | None = None) -> list[TelemetryEvent]:
        return [e for e in self._events if name is None or e.name == name]

    def spans(self, name: str | None = None) -> list[SpanRecord]:
        return [s for s in self._spans if name is None or s.name == name]

    def counter_total(self, name: str) -> int:
        return int(sum(p.value for p in self._counters if p.name == name))

    def histograms(self, name: str | None = None) -> list[MetricPoint]:
        return [h for h in self._histograms if name is None or h.name == name]


@dataclass(slots=True)
class OpenTelemetrySink:
    """
    OpenTelemetry sink using the global tracer/meter providers.

    Imports are lazy so the package runs without OpenTelemetry installed.
    """

    tracer_name: str = "agentrun.core.runner"
    meter_name: str = "agentrun.core.runner"

    _tracer: Any = field(default=None, init=False, repr=False)
    _meter: Any = field(default=None, init=False, repr=False)
    _instruments: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def _ensure_clients(self) -> None:
        if self._tracer is not None and self._meter is not None:
            return
        try:
            from opentelemetry import metrics, trace
        except ImportError as e:
            raise RuntimeError(
                "OpenTelemetrySink requires the 'otel' extra (opentelemetry-api/opentelemetry-sdk)"
            ) from e
        self._tracer = trace.get_tracer(self.tracer_name)
        self._meter = metrics.get_meter(self.meter_name)

    def _instrument(self, kind: str, name: str) -> Any:
        key = f"{kind}:{name}"
        inst = self._instruments.get(key)
        if inst is None:
            inst = self._meter.create_counter(name) if kind == "counter" else self._meter.create_histogram(name)
            self._instruments[key] = inst
        return inst

    def record_event(self, event: TelemetryEvent) -> None:
        self.increment_counter("agent.events", attributes={"event_name": event.name, **event.attributes})

    def start_span(self, name: str, *, attributes: Attributes | None = None) -> TelemetrySpan | None:
        try:
            self._ensure_clients()
            span = self._tracer.start_span(name=name)
            attrs = _to_attrs(attributes)
            if attrs:
                span.set_attributes(attrs)
        except Exception:
            return None
        return TelemetrySpan(name=name, started_at_ms=now_ms(), attributes=dict(attributes or {}), native_span=span)

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: Attributes | None = None,
    ) -> None:
        if span is None or span.native_span is None:
            return
        try:
            from opentelemetry.trace import Status, StatusCode

            native = span.native_span
            attrs = _to_attrs({**span.attributes, **dict(attributes or {})})
            if attrs:
                native.set_attributes(attrs)
            if status == "error":
                native.set_status(Status(StatusCode.ERROR, error or status))
            else:
                native.set_status(Status(StatusCode.OK))
            native.end()
        except Exception:
            return

    def increment_counter(self, name: str, value: int = 1, *, attributes: Attributes | None = None) -> None:
        try:
            self._ensure_clients()
            self._instrument("counter", name).add(int(value), attributes=_to_attrs(attributes))
        except Exception:
            return

    def record_histogram(self, name: str, value: float, *, attributes: Attributes | None = None) -> None:
        try:
            self._ensure_clients()
            self._instrument("histogram", name).record(float(value), attributes=_to_attrs(attributes))
        except Exception:
            return


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_attrs(values: Attributes | None) -> dict[str, Any]:
    """Flatten JSON attribute values into OpenTelemetry-compatible primitives."""
    out: dict[str, Any] = {}
    for key, value in (values or {}).items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            out[str(key)] = value
        elif isinstance(value, list):
            out[str(key)] = tuple(str(v) for v in value)
        else:
            out[str(key)] = str(value)
    return out
