"""Tests for the Cloudflare HTTP client.

httpx.MockTransport routes every request to a handler function, so we
can check the exact URLs, query strings and headers the client sends
and feed it canned API envelopes, without touching the network.
"""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from cloudflare_exporter.services.cloudflare import (
    CloudflareAPIError,
    CloudflareAuth,
    CloudflareClient,
    select_auth,
)
from tests.conftest import make_settings


def _envelope(result, *, success: bool = True, errors: list | None = None) -> dict:
    return {"success": success, "errors": errors or [], "messages": [], "result": result}


def _client(handler) -> CloudflareClient:
    return CloudflareClient(
        CloudflareAuth("token", {"Authorization": "Bearer t0k"}),
        transport=httpx.MockTransport(handler),
    )


# ---- authentication selection ----


def test_select_auth_prefers_email_and_key() -> None:
    auth = select_auth(
        make_settings(cloudflare_email="ops@example.com", cloudflare_key="k", cloudflare_token="t")
    )
    assert auth.method == "email"
    assert auth.headers == {"X-Auth-Email": "ops@example.com", "X-Auth-Key": "k"}


def test_select_auth_email_without_key_falls_through_to_token() -> None:
    auth = select_auth(make_settings(cloudflare_email="ops@example.com", cloudflare_token="t"))
    assert auth.method == "token"
    assert auth.headers == {"Authorization": "Bearer t"}


def test_select_auth_user_service_key() -> None:
    auth = select_auth(make_settings(cloudflare_token="", cloudflare_user_service_key="v1.0-abc"))
    assert auth.method == "user_service_key"
    assert auth.headers == {"X-Auth-User-Service-Key": "v1.0-abc"}


def test_select_auth_none_configured() -> None:
    with pytest.raises(ValueError, match="no Cloudflare authentication method provided"):
        select_auth(make_settings(cloudflare_token=""))


def test_auth_headers_not_in_repr() -> None:
    auth = CloudflareAuth("token", {"Authorization": "Bearer secret"})
    assert "secret" not in repr(auth)


# ---- zone_id_by_name ----


def test_zone_id_by_name_sends_auth_and_filter() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_envelope([{"id": "z1", "name": "example.com"}]))

    with _client(handler) as client:
        assert client.zone_id_by_name("example.com") == "z1"

    request = seen[0]
    assert request.url.path == "/client/v4/zones"
    assert request.url.params["name"] == "example.com"
    assert request.headers["Authorization"] == "Bearer t0k"


def test_zone_id_by_name_not_found() -> None:
    client = _client(lambda request: httpx.Response(200, json=_envelope([])))
    with pytest.raises(CloudflareAPIError, match="zone could not be found"):
        client.zone_id_by_name("badzone.example")


def test_zone_id_by_name_ambiguous() -> None:
    client = _client(
        lambda request: httpx.Response(200, json=_envelope([{"id": "a"}, {"id": "b"}]))
    )
    with pytest.raises(CloudflareAPIError, match="ambiguous"):
        client.zone_id_by_name("example.com")


# ---- zone_analytics_dashboard ----


def test_zone_analytics_dashboard_parses_totals() -> None:
    seen: list[httpx.Request] = []
    payload = {
        "totals": {
            "requests": {"all": 1000, "country": {"US": 500}, "ssl": {"encrypted": 900}},
            "uniques": {"all": 42},
            "since": "2024-04-30T12:00:00Z",
        },
        "timeseries": [],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_envelope(payload))

    client = _client(handler)
    data = client.zone_analytics_dashboard("z1", datetime(2024, 4, 30, 12, 0, tzinfo=UTC))

    assert data.totals.requests.all == 1000
    assert data.totals.requests.country == {"US": 500}
    assert data.totals.requests.ssl.encrypted == 900
    assert data.totals.requests.ssl.unencrypted == 0
    assert data.totals.bandwidth.content_type == {}
    assert data.totals.uniques.all == 42
    assert seen[0].url.path == "/client/v4/zones/z1/analytics/dashboard"
    assert seen[0].url.params["since"] == "2024-04-30T12:00:00Z"
    assert seen[0].url.params["continuous"] == "false"


def test_api_error_envelope_raises() -> None:
    body = _envelope(None, success=False, errors=[{"code": 10000, "message": "Authentication error"}])
    client = _client(lambda request: httpx.Response(403, json=body))

    with pytest.raises(CloudflareAPIError, match="Authentication error") as excinfo:
        client.zone_analytics_dashboard("z1", datetime(2024, 4, 30, tzinfo=UTC))

    assert excinfo.value.status_code == 403
    assert excinfo.value.errors == ["10000: Authentication error"]


def test_success_false_with_200_raises() -> None:
    client = _client(lambda request: httpx.Response(200, json=_envelope(None, success=False)))
    with pytest.raises(CloudflareAPIError):
        client.zone_id_by_name("example.com")


def test_non_json_body_raises() -> None:
    client = _client(lambda request: httpx.Response(502, text="<html>Bad gateway</html>"))
    with pytest.raises(CloudflareAPIError, match="HTTP 502"):
        client.zone_id_by_name("example.com")


def test_transport_error_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(CloudflareAPIError, match="connection refused"):
        client.zone_id_by_name("example.com")


# ---- access_service_tokens ----


def test_access_service_tokens() -> None:
    seen: list[httpx.Request] = []
    tokens = [
        {"id": "t1", "name": "tok1", "client_id": "c1", "expires_at": "2025-01-01T00:00:00Z"},
        {"id": "t2", "name": "tok2", "client_id": "c2"},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_envelope(tokens))

    result = _client(handler).access_service_tokens("acct1")

    assert seen[0].url.path == "/client/v4/accounts/acct1/access/service_tokens"
    assert [t.name for t in result] == ["tok1", "tok2"]
    assert result[0].expires_at == datetime(2025, 1, 1, tzinfo=UTC)
    assert result[1].expires_at is None


def test_malformed_tokens_raise_api_error() -> None:
    client = _client(lambda request: httpx.Response(200, json=_envelope([{"id": "t1"}])))
    with pytest.raises(CloudflareAPIError, match="malformed service tokens"):
        client.access_service_tokens("acct1")
