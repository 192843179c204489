from types import SimpleNamespace

from starlette.requests import Request

from clinic_booking.ratelimit import identity as rl_identity


def _make_request(headers=None, client=("10.0.0.7", 52100)):
    headers = headers or {}
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/bookings",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


def test_authenticated_user_wins():
    req = _make_request(headers={"X-Forwarded-For": "1.2.3.4"})
    req.state.user = SimpleNamespace(id="01J0PAT0000000000000000001")
    assert rl_identity.resolve_identity(req) == "user:01J0PAT0000000000000000001"


def test_state_user_id():
    req = _make_request()
    req.state.user_id = "user-456"
    assert rl_identity.resolve_identity(req) == "user:user-456"


def test_first_forwarded_hop():
    req = _make_request(headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})
    assert rl_identity.resolve_identity(req) == "ip:1.2.3.4"


def test_client_host():
    assert rl_identity.resolve_identity(_make_request()) == "ip:10.0.0.7"


def test_unknown_client():
    assert rl_identity.resolve_identity(_make_request(client=None)) == "ip:unknown"
