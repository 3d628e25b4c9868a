from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Callable

from app.config import settings


logger = logging.getLogger('app.metrics')


class MetricsExporter:
    def export_minute(self, *, minute_start: datetime, counts: dict[str, int]) -> None:
        raise NotImplementedError


class LogMetricsExporter(MetricsExporter):
    def export_minute(self, *, minute_start: datetime, counts: dict[str, int]) -> None:
        rendered = ' '.join(f'{key}={counts[key]}' for key in sorted(counts))
        logger.info('lab_metrics minute=%s %s', minute_start.isoformat(), rendered)


_exporter: MetricsExporter = LogMetricsExporter()


def set_metrics_exporter(exporter: MetricsExporter) -> None:
    global _exporter
    _exporter = exporter


class _MinuteCounter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._minute_start_epoch: int | None = None
        self._counts: dict[str, int] = {}

    def _minute_epoch(self, ts: float) -> int:
        return int(ts // 60) * 60

    def _flush_locked(self, minute_epoch: int) -> None:
        if not self._counts:
            return
        minute_start = datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=minute_epoch)
        try:
            _exporter.export_minute(minute_start=minute_start, counts=dict(self._counts))
        except Exception:
            logger.exception('metrics_export_failed minute=%s', minute_start.isoformat())
        self._counts.clear()

    def record(self, key: str, amount: int = 1) -> None:
        now = time.time()
        minute_epoch = self._minute_epoch(now)
        with self._lock:
            if self._minute_start_epoch is None:
                self._minute_start_epoch = minute_epoch
            if minute_epoch != self._minute_start_epoch:
                self._flush_locked(self._minute_start_epoch)
                self._minute_start_epoch = minute_epoch
            self._counts[key] = self._counts.get(key, 0) + amount

    def flush(self) -> None:
        with self._lock:
            if self._minute_start_epoch is None:
                return
            self._flush_locked(self._minute_start_epoch)


_counter = _MinuteCounter()


def record_cache_event(event: str) -> None:
    _counter.record(event)


def record_lab_event(event: str, amount: int = 1) -> None:
    if amount <= 0:
        return
    _counter.record(event, amount)


def flush_metrics() -> None:
    _counter.flush()


def timed_service(label: str, *, threshold_ms: int | None = None) -> Callable[[Callable[..., object]], Callable[..., object]]:
    def decorator(func: Callable[..., object]) -> Callable[..., object]:
        threshold_value = threshold_ms if threshold_ms is not None else settings.metrics_slow_ms

        @wraps(func)
        def wrapper(*args: object, **kwargs: object):
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter() - started) * 1000.0
                if duration_ms >= threshold_value:
                    logger.info('service_timer label=%s duration_ms=%.2f', label, duration_ms)

        return wrapper

    return decorator
