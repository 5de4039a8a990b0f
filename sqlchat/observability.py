from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram, start_http_server

from .config import ObservabilityConfig

STAGE_LATENCY = Histogram("sqlchat_stage_latency_seconds", "Latency per pipeline stage", ["stage"])
REQUEST_COUNTER = Counter("sqlchat_requests_total", "Chat requests by outcome", ["outcome"])
GUARD_REJECTIONS = Counter("sqlchat_guard_rejections_total", "Statements rejected by the SQL guard", ["reason"])
MODEL_REPAIRS = Counter("sqlchat_model_repairs_total", "Repair prompts sent after invalid model output")


def init_metrics_server(cfg: ObservabilityConfig) -> None:
    if cfg.metrics_port > 0:
        start_http_server(cfg.metrics_port)


@contextmanager
def record_latency(stage: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        STAGE_LATENCY.labels(stage=stage).observe(time.perf_counter() - start)


__all__ = [
    "init_metrics_server",
    "record_latency",
    "STAGE_LATENCY",
    "REQUEST_COUNTER",
    "GUARD_REJECTIONS",
    "MODEL_REPAIRS",
]
