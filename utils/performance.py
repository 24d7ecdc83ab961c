"""Performance monitoring utilities using Prometheus metrics."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

import psutil
from prometheus_client import Counter, Gauge, Histogram


messages_processed = Counter("messages_processed_total", "Total processed chat updates")
commands_processed = Counter("commands_processed_total", "Total processed commands")
errors_total = Counter("errors_total", "Total handler errors")
users_active = Gauge("users_active_total", "Users active during the last 30 days")
update_processing_time = Histogram(
    "update_processing_time_seconds",
    "Time spent handling one update",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
bookings_created = Counter("bookings_created_total", "Created bookings", labelnames=("item_name",))
booking_duration = Histogram(
    "booking_duration_seconds",
    "Time spent creating a booking",
    labelnames=("item_name",),
)
sync_tasks = Counter("sync_tasks_total", "Processed outbox tasks", labelnames=("kind", "result"))
process_memory_rss = Gauge("process_memory_rss_bytes", "Resident memory of the bot process")
process_cpu_percent = Gauge("process_cpu_percent", "CPU usage of the bot process")


class PerformanceMonitor:
    """Thin facade over the module-level collectors."""

    def __init__(self) -> None:
        self._process = psutil.Process()

    @contextmanager
    def track_update(self, is_command: bool = False) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            update_processing_time.observe(time.perf_counter() - start)
            messages_processed.inc()
            if is_command:
                commands_processed.inc()

    @contextmanager
    def track_booking(self, item_name: str) -> Iterator[None]:
        """Time a booking creation; only successful ones are counted."""
        start = time.perf_counter()
        yield
        booking_duration.labels(item_name=item_name).observe(time.perf_counter() - start)
        bookings_created.labels(item_name=item_name).inc()

    def record_error(self) -> None:
        errors_total.inc()

    def record_sync(self, kind: str, result: str) -> None:
        sync_tasks.labels(kind=kind, result=result).inc()

    def record_active_users(self, users_count: int) -> None:
        users_active.set(users_count)

    def gather_host_metrics(self) -> dict:
        memory_info = self._process.memory_info()
        cpu = self._process.cpu_percent(interval=None)
        process_memory_rss.set(memory_info.rss)
        process_cpu_percent.set(cpu)
        return {
            "memory_rss": memory_info.rss,
            "cpu_percent": cpu,
        }


monitor = PerformanceMonitor()
