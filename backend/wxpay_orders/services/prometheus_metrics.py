from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


def _prom_escape_label_value(value: str) -> str:
    s = str(value)
    s = s.replace("\\", "\\\\")
    s = s.replace('"', "\\\"")
    s = s.replace("\n", "\\n")
    return s


def _labels(**kw: str) -> str:
    inner = ",".join(f'{k}="{_prom_escape_label_value(v)}"' for k, v in kw.items())
    return "{" + inner + "}"


@dataclass(frozen=True)
class HttpKey:
    method: str
    route: str
    status: str


@dataclass
class HttpAgg:
    count: int = 0
    sum_seconds: float = 0.0
    bucket_le_counts: dict[float, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentEventKey:
    action: str
    channel: str
    result: str


class PrometheusMetrics:
    def __init__(self, prefix: str = "wxpay") -> None:
        self.prefix: str = prefix
        self.started_at: float = float(time.time())
        self._http: dict[HttpKey, HttpAgg] = {}
        self._payment_events: dict[PaymentEventKey, int] = {}
        self._lock: threading.Lock = threading.Lock()

        self.http_duration_buckets: list[float] = [0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]

    def record_http(self, *, method: str, route: str, status_code: int, duration_seconds: float) -> None:
        key = HttpKey(
            method=str(method or "").upper() or "GET",
            route=str(route or "").strip() or "unknown",
            status=str(int(status_code)),
        )
        d = max(0.0, float(duration_seconds))
        with self._lock:
            agg = self._http.setdefault(key, HttpAgg())
            agg.count += 1
            agg.sum_seconds += d
            for le in self.http_duration_buckets:
                if d <= le:
                    agg.bucket_le_counts[le] = agg.bucket_le_counts.get(le, 0) + 1
            agg.bucket_le_counts[float("inf")] = agg.bucket_le_counts.get(float("inf"), 0) + 1

    def record_payment_event(self, *, action: str, channel: str | None, result: str) -> None:
        key = PaymentEventKey(
            action=str(action or "").strip() or "unknown",
            channel=str(channel or "").strip() or "unknown",
            result=str(result or "").strip() or "unknown",
        )
        with self._lock:
            self._payment_events[key] = self._payment_events.get(key, 0) + 1

    def snapshot_http(self) -> dict[HttpKey, HttpAgg]:
        with self._lock:
            return {
                k: HttpAgg(count=v.count, sum_seconds=v.sum_seconds, bucket_le_counts=dict(v.bucket_le_counts))
                for k, v in self._http.items()
            }

    def snapshot_payment_events(self) -> dict[PaymentEventKey, int]:
        with self._lock:
            return dict(self._payment_events)

    def reset(self) -> None:
        with self._lock:
            self._http.clear()
            self._payment_events.clear()

    def render_prometheus(self) -> str:
        p = self.prefix
        http_snap = self.snapshot_http()
        events_snap = self.snapshot_payment_events()
        http_keys = sorted(http_snap.keys(), key=lambda x: (x.route, x.method, x.status))

        lines: list[str] = [
            f"# HELP {p}_process_started_at_seconds Unix timestamp when process started",
            f"# TYPE {p}_process_started_at_seconds gauge",
            f"{p}_process_started_at_seconds {self.started_at}",
            f"# HELP {p}_http_requests_total Total HTTP requests",
            f"# TYPE {p}_http_requests_total counter",
        ]
        for key in http_keys:
            lbl = _labels(method=key.method, route=key.route, status=key.status)
            lines.append(f"{p}_http_requests_total{lbl} {http_snap[key].count}")

        lines.append(f"# HELP {p}_http_request_duration_seconds Request duration histogram")
        lines.append(f"# TYPE {p}_http_request_duration_seconds histogram")
        for key in http_keys:
            agg = http_snap[key]
            for le in list(self.http_duration_buckets) + [float("inf")]:
                le_label = "+Inf" if le == float("inf") else str(le)
                lbl = _labels(method=key.method, route=key.route, status=key.status, le=le_label)
                lines.append(f"{p}_http_request_duration_seconds_bucket{lbl} {agg.bucket_le_counts.get(le, 0)}")
            lbl = _labels(method=key.method, route=key.route, status=key.status)
            lines.append(f"{p}_http_request_duration_seconds_sum{lbl} {agg.sum_seconds}")
            lines.append(f"{p}_http_request_duration_seconds_count{lbl} {agg.count}")

        lines.append(f"# HELP {p}_payment_events_total Payment lifecycle events by action, channel and result")
        lines.append(f"# TYPE {p}_payment_events_total counter")
        for key in sorted(events_snap.keys(), key=lambda x: (x.action, x.channel, x.result)):
            lbl = _labels(action=key.action, channel=key.channel, result=key.result)
            lines.append(f"{p}_payment_events_total{lbl} {events_snap[key]}")

        return "\n".join(lines) + "\n"


prometheus_metrics = PrometheusMetrics()
