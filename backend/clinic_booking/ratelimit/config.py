from dataclasses import dataclass
import json
import os
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RateLimitSettings:
    enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    redis_url: str = os.getenv("RATE_LIMIT_REDIS_URL", "redis://localhost:6379/0")
    namespace: str = os.getenv("RATE_LIMIT_NAMESPACE", "clinic")
    message: str = "Too many requests, please try again later."


settings = RateLimitSettings()


@dataclass(frozen=True)
class EndpointPolicy:
    """Fixed window: at most ``max_requests`` per ``window_ms`` per identity."""

    window_ms: int
    max_requests: int


DEFAULT_POLICY = EndpointPolicy(window_ms=60_000, max_requests=10)

# Keyed by "METHOD /path"
ENDPOINT_POLICIES: Dict[str, EndpointPolicy] = {
    "POST /bookings": EndpointPolicy(window_ms=60_000, max_requests=10),
    "GET /bookings": EndpointPolicy(window_ms=60_000, max_requests=30),
    "POST /auth/login": EndpointPolicy(window_ms=300_000, max_requests=5),
    "POST /payments": EndpointPolicy(window_ms=60_000, max_requests=5),
    "POST /line/webhook": EndpointPolicy(window_ms=1_000, max_requests=10),
}


def endpoint_key(method: str, path: str) -> str:
    return f"{method.upper()} {path}"


def _load_overrides_from_env() -> Dict[str, EndpointPolicy]:
    raw = os.getenv("RATE_LIMIT_POLICY_OVERRIDES_JSON", "").strip()
    if not raw:
        return {}
    try:
        obj = json.loads(raw)
    except ValueError:
        return {}
    if not isinstance(obj, dict):
        return {}

    overrides: Dict[str, EndpointPolicy] = {}
    for key, value in obj.items():
        if not isinstance(value, dict):
            continue
        base = ENDPOINT_POLICIES.get(str(key), DEFAULT_POLICY)
        try:
            overrides[str(key)] = EndpointPolicy(
                window_ms=int(value.get("window_ms", base.window_ms)),
                max_requests=int(value.get("max_requests", base.max_requests)),
            )
        except (TypeError, ValueError):
            continue
    return overrides


_POLICY_OVERRIDES: Dict[str, EndpointPolicy] = _load_overrides_from_env()


def reload_config() -> Dict[str, Any]:
    """Re-read env flags and policy overrides. Returns a view for introspection."""
    global _POLICY_OVERRIDES, settings

    settings = RateLimitSettings(
        enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
        redis_url=os.getenv("RATE_LIMIT_REDIS_URL", "redis://localhost:6379/0"),
        namespace=os.getenv("RATE_LIMIT_NAMESPACE", "clinic"),
    )
    _POLICY_OVERRIDES = _load_overrides_from_env()

    try:
        from .metrics import rl_active_overrides, rl_config_reload_total

        rl_config_reload_total.inc()
        rl_active_overrides.set(len(_POLICY_OVERRIDES))
    except ImportError:
        pass

    return {
        "enabled": settings.enabled,
        "namespace": settings.namespace,
        "policy_overrides_count": len(_POLICY_OVERRIDES),
    }


def get_effective_policy(
    key: str, policies: Optional[Dict[str, EndpointPolicy]] = None
) -> EndpointPolicy:
    """Exact "METHOD /path" match from overrides, then the table, then the default."""
    if key in _POLICY_OVERRIDES:
        return _POLICY_OVERRIDES[key]
    table = ENDPOINT_POLICIES if policies is None else policies
    return table.get(key, DEFAULT_POLICY)
