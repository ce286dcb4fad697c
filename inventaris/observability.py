from __future__ import annotations

import contextvars
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from flask import g, has_request_context, request


_LOG_REQUEST_ID_CTX: contextvars.ContextVar[str] = contextvars.ContextVar("log_request_id", default="")

# Attributes every LogRecord carries; anything else was passed through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


def set_log_request_id(request_id: str | None) -> None:
    """Request id for log lines emitted outside a Flask request (CLI, workers)."""
    _LOG_REQUEST_ID_CTX.set(str(request_id or "").strip())


def current_request_id(default: str | None = None) -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return _LOG_REQUEST_ID_CTX.get() or default or "n/a"


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or str(uuid.uuid4())
        g.request_id = request_id
    set_log_request_id(request_id)
    return request_id


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, request fields, then any `extra`."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload["request_id"] = current_request_id()
            payload["method"] = request.method
            payload["path"] = request.path
            if request.url_rule is not None:
                payload["route"] = request.url_rule.rule
        else:
            payload["request_id"] = str(getattr(record, "request_id", "") or "").strip() or current_request_id()

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in payload or callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    app.logger.handlers = []
    app.logger.propagate = True


# name -> (help, label names). Unlabelled counters are always exported, even at zero.
_COUNTERS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "http_request_total": ("Total HTTP requests by method, route and status.", ("method", "route", "status")),
    "domain_event_emitted_total": ("Domain events published by type.", ("event_type",)),
    "request_transition_total": ("Request status transitions by outcome.", ("transition", "outcome")),
    "stock_shortfall_total": ("Stock lines clamped at zero on hand-over.", ()),
    "notification_delivered_total": ("Notifications written to a sink.", ()),
    "notification_failed_total": ("Notification deliveries that failed, by event type.", ("event_type",)),
    "doc_number_allocated_total": ("Document numbers allocated.", ()),
}

_DURATION_BUCKETS_MS = (5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0)


@dataclass
class _DurationHistogram:
    count: int = 0
    total: float = 0.0
    max: float = 0.0
    errors: int = 0
    buckets: List[int] = field(default_factory=lambda: [0] * len(_DURATION_BUCKETS_MS))

    def observe(self, value_ms: float, failed: bool) -> None:
        value_ms = max(0.0, float(value_ms))
        self.count += 1
        self.total += value_ms
        self.max = max(self.max, value_ms)
        if failed:
            self.errors += 1
        for index, limit in enumerate(_DURATION_BUCKETS_MS):
            if value_ms <= limit:
                self.buckets[index] += 1


def _label(value: object) -> str:
    return str(value or "unknown").strip() or "unknown"


class MetricsRegistry:
    """In-process counters behind /health and /metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, Dict[Tuple[str, ...], int]] = {}
        self._durations: Dict[Tuple[str, str], _DurationHistogram] = {}
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._counters = {name: {} for name in _COUNTERS}
            self._durations = {}

    def inc(self, name: str, *labels: object, by: int = 1) -> None:
        if by <= 0:
            return
        key = tuple(_label(value) for value in labels)
        with self._lock:
            series = self._counters[name]
            series[key] = series.get(key, 0) + by

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        method = _label(method).upper()
        route = _label(route)
        self.inc("http_request_total", method, route, int(status_code))
        with self._lock:
            histogram = self._durations.setdefault((method, route), _DurationHistogram())
            histogram.observe(duration_ms, failed=int(status_code) >= 400)

    def _total(self, name: str) -> int:
        return sum(self._counters[name].values())

    def _by_first_label(self, name: str) -> Dict[str, int]:
        return {labels[0]: value for labels, value in sorted(self._counters[name].items())}

    def snapshot(self) -> dict:
        with self._lock:
            routes = sorted(self._durations.items(), key=lambda item: item[1].count, reverse=True)
            return {
                "requests_total": sum(h.count for h in self._durations.values()),
                "errors_total": sum(h.errors for h in self._durations.values()),
                "by_route": [
                    {
                        "route": f"{method} {route}",
                        "requests": h.count,
                        "errors": h.errors,
                        "avg_latency_ms": round(h.total / h.count, 2) if h.count else 0.0,
                        "max_latency_ms": round(h.max, 2),
                    }
                    for (method, route), h in routes[:40]
                ],
                "domain_events": {
                    "emitted_total": self._total("domain_event_emitted_total"),
                    "by_type": self._by_first_label("domain_event_emitted_total"),
                },
                "request_transitions": {
                    ":".join(labels): value
                    for labels, value in sorted(self._counters["request_transition_total"].items())
                },
                "stock_shortfall_total": self._total("stock_shortfall_total"),
                "notifications": {
                    "delivered_total": self._total("notification_delivered_total"),
                    "failed_total": self._total("notification_failed_total"),
                },
                "doc_number_allocated_total": self._total("doc_number_allocated_total"),
            }

    def render_prometheus(self) -> str:
        lines: List[str] = []
        with self._lock:
            for name, (help_text, label_names) in _COUNTERS.items():
                lines.append(f"# HELP {name} {help_text}")
                lines.append(f"# TYPE {name} counter")
                series = self._counters[name]
                if not label_names:
                    lines.append(_prom_line(name, sum(series.values())))
                    continue
                for labels, value in sorted(series.items()):
                    lines.append(_prom_line(name, value, dict(zip(label_names, labels))))

            lines.append("# HELP http_request_duration_ms HTTP request duration in milliseconds.")
            lines.append("# TYPE http_request_duration_ms histogram")
            for (method, route), h in sorted(self._durations.items()):
                labels = {"method": method, "route": route}
                for limit, count in zip(_DURATION_BUCKETS_MS, h.buckets):
                    lines.append(_prom_line("http_request_duration_ms_bucket", count, labels | {"le": f"{limit:g}"}))
                lines.append(_prom_line("http_request_duration_ms_bucket", h.count, labels | {"le": "+Inf"}))
                lines.append(_prom_line("http_request_duration_ms_sum", h.total, labels))
                lines.append(_prom_line("http_request_duration_ms_count", h.count, labels))
        return "\n".join(lines) + "\n"


def _prom_escape(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _prom_line(name: str, value: int | float, labels: Dict[str, object] | None = None) -> str:
    if not labels:
        return f"{name} {value}"
    rendered = ",".join(f'{key}="{_prom_escape(val)}"' for key, val in sorted(labels.items()))
    return f"{name}{{{rendered}}} {value}"


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "_request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, int(response.status_code), elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def prometheus_metrics_text() -> str:
    return _METRICS.render_prometheus()


def observe_domain_event_emitted(event_type: str) -> None:
    _METRICS.inc("domain_event_emitted_total", event_type)


def observe_request_transition(transition: str, outcome: str) -> None:
    _METRICS.inc("request_transition_total", transition, outcome)


def observe_stock_shortfall(count: int = 1) -> None:
    _METRICS.inc("stock_shortfall_total", by=int(count or 0))


def observe_notification(event_type: str, *, delivered: bool) -> None:
    if delivered:
        _METRICS.inc("notification_delivered_total")
    else:
        _METRICS.inc("notification_failed_total", event_type)


def observe_doc_number_allocated() -> None:
    _METRICS.inc("doc_number_allocated_total")


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
