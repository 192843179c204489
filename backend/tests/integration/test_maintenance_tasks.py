from datetime import datetime, timedelta, timezone

from clinic_booking.models import RateLimitCounter
from clinic_booking.ratelimit.fixed_window import RateLimiter
from clinic_booking.tasks import maintenance
from clinic_booking.tasks.celery_app import celery_app
from tests._utils.rate_limit_doubles import ManualClock

# ManualClock's default instant; the POST /payments window ends 20s later
WINDOW_END = datetime(2025, 6, 15, 15, 7, 0, tzinfo=timezone.utc)


def _keys(session_factory):
    session = session_factory()
    try:
        return sorted(row.key for row in session.query(RateLimitCounter).all())
    finally:
        session.close()


def test_purge_drops_only_finished_windows(session_factory):
    clock = ManualClock()
    limiter = RateLimiter(session_factory=session_factory, clock=clock)
    limiter.check_rate_limit("POST /payments", "ip:1.1.1.1")
    limiter.check_rate_limit("POST /auth/login", "ip:1.1.1.1")

    removed = maintenance.purge_expired_rate_limit_counters(
        session_factory, now=WINDOW_END + timedelta(seconds=1)
    )

    assert removed == 1
    assert len(_keys(session_factory)) == 1
    assert "POST /auth/login" in _keys(session_factory)[0]


def test_purge_with_nothing_expired(session_factory):
    limiter = RateLimiter(session_factory=session_factory, clock=ManualClock())
    limiter.check_rate_limit("POST /payments", "ip:1.1.1.1")

    assert maintenance.purge_expired_rate_limit_counters(session_factory, now=WINDOW_END) == 0
    assert len(_keys(session_factory)) == 1


def test_task_uses_the_process_session_factory(session_factory, monkeypatch):
    monkeypatch.setattr(maintenance, "init_session_factory", lambda: session_factory)
    RateLimiter(session_factory=session_factory, clock=ManualClock(0.0)).check_rate_limit(
        "POST /payments", "ip:1.1.1.1"
    )

    assert maintenance.purge_rate_limit_counters() == 1
    assert _keys(session_factory) == []


def test_purge_is_scheduled():
    entry = celery_app.conf.beat_schedule["purge-rate-limit-counters"]
    assert entry["task"] == "maintenance.purge_rate_limit_counters"
    assert "maintenance.purge_rate_limit_counters" in celery_app.tasks
