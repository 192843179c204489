from prometheus_client import Counter, Gauge, Histogram

from clinic_booking.monitoring.prometheus_metrics import REGISTRY

rl_decisions = Counter(
    "clinic_booking_rl_decisions_total",
    "rate-limit decisions",
    ["endpoint", "action"],  # allow | block
    registry=REGISTRY,
)
rl_retry_after = Histogram(
    "clinic_booking_rl_retry_after_seconds",
    "retry-after values on blocked requests",
    ["endpoint"],
    registry=REGISTRY,
    buckets=(1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

rl_backend_errors = Counter(
    "clinic_booking_rl_backend_errors_total",
    "counter store failures during rate-limit evaluation",
    ["backend"],  # redis | database
    registry=REGISTRY,
)

rl_config_reload_total = Counter(
    "clinic_booking_rl_config_reload_total",
    "count of rate-limit configuration reloads",
    [],
    registry=REGISTRY,
)

rl_active_overrides = Gauge(
    "clinic_booking_rl_active_overrides",
    "number of active rate-limit policy overrides",
    [],
    registry=REGISTRY,
)

__all__ = [
    "rl_decisions",
    "rl_retry_after",
    "rl_backend_errors",
    "rl_config_reload_total",
    "rl_active_overrides",
]
