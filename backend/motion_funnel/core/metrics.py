"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- Triggers received per channel and how they were resolved
- Events forwarded to the event sink
- Debounce state and listener health
- HTTP requests against the management API
- System resource usage (CPU, memory)
"""
import time
import logging
from typing import Optional
from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)
import psutil

logger = logging.getLogger(__name__)

# Private registry; /metrics exports only what is defined here
REGISTRY = CollectorRegistry()

# ============================================================================
# Application Info
# ============================================================================

app_info = Info(
    'app',
    'Application information',
    registry=REGISTRY
)

app_uptime_seconds = Gauge(
    'app_uptime_seconds',
    'Application uptime in seconds',
    registry=REGISTRY
)

# ============================================================================
# Trigger Metrics
# ============================================================================

motion_triggers_received_total = Counter(
    'motion_triggers_received_total',
    'Raw triggers received per ingress channel',
    ['channel'],
    registry=REGISTRY
)

motion_trigger_results_total = Counter(
    'motion_trigger_results_total',
    'Trigger resolution outcomes',
    ['channel', 'outcome'],
    registry=REGISTRY
)

motion_events_forwarded_total = Counter(
    'motion_events_forwarded_total',
    'Events forwarded to the event sink',
    ['trigger_type', 'state'],
    registry=REGISTRY
)

motion_debounce_armed = Gauge(
    'motion_debounce_armed',
    'Number of cameras with an active debounce timer',
    registry=REGISTRY
)

motion_listener_up = Gauge(
    'motion_listener_up',
    'Trigger listener running status (1=running, 0=stopped)',
    ['listener'],
    registry=REGISTRY
)

# ============================================================================
# HTTP Request Metrics (management API)
# ============================================================================

api_requests_total = Counter(
    'api_requests_total',
    'Management API requests',
    ['method', 'path', 'status_code'],
    registry=REGISTRY
)

api_request_duration_seconds = Histogram(
    'api_request_duration_seconds',
    'Management API request latency in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=REGISTRY
)

# ============================================================================
# System Metrics
# ============================================================================

system_cpu_usage_percent = Gauge(
    'system_cpu_usage_percent',
    'System CPU usage percentage',
    registry=REGISTRY
)

system_memory_usage_percent = Gauge(
    'system_memory_usage_percent',
    'System memory usage percentage',
    registry=REGISTRY
)

_start_time: Optional[float] = None


def init_metrics(version: str = "1.0.0") -> None:
    """Initialize application info and start the uptime clock."""
    global _start_time
    _start_time = time.time()
    app_info.info({'version': version, 'name': 'motion-funnel'})
    for listener in ('http', 'mqtt', 'smtp'):
        motion_listener_up.labels(listener=listener).set(0)


def record_trigger_received(channel: str) -> None:
    motion_triggers_received_total.labels(channel=channel).inc()


def record_trigger_result(channel: str, outcome: str) -> None:
    motion_trigger_results_total.labels(channel=channel, outcome=outcome).inc()


def record_event_forwarded(trigger_type: str, state: bool) -> None:
    motion_events_forwarded_total.labels(
        trigger_type=trigger_type,
        state='true' if state else 'false'
    ).inc()


def set_debounce_armed(count: int) -> None:
    motion_debounce_armed.set(count)


def update_listener_status(listener: str, running: bool) -> None:
    motion_listener_up.labels(listener=listener).set(1 if running else 0)


def record_request_metrics(
    method: str,
    path: str,
    status_code: int,
    response_time_seconds: float
) -> None:
    """Record metrics for a management API request."""
    api_requests_total.labels(method=method, path=path, status_code=str(status_code)).inc()
    api_request_duration_seconds.labels(method=method, path=path).observe(response_time_seconds)


def update_system_metrics() -> None:
    """Update system resource metrics (CPU, memory) and uptime."""
    try:
        system_cpu_usage_percent.set(psutil.cpu_percent(interval=None))
        system_memory_usage_percent.set(psutil.virtual_memory().percent)

        if _start_time:
            app_uptime_seconds.set(time.time() - _start_time)

    except Exception as e:
        logger.warning(f"Failed to update system metrics: {e}")


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format metrics
    """
    update_system_metrics()
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
