"""Cloudflare v4 API client: the upstream side of the exporter.

Three calls are all the exporter needs:

  zone_id_by_name           GET /zones?name=<zone>
  zone_analytics_dashboard  GET /zones/<id>/analytics/dashboard
  access_service_tokens     GET /accounts/<id>/access/service_tokens

Every v4 response is wrapped in the same envelope:

  {"success": true, "errors": [], "messages": [], "result": ...}

``_get`` unwraps it.  HTTP errors, ``success: false``, transport
failures and payloads that do not match the models all become
``CloudflareAPIError``, so callers handle exactly one exception type.
Nothing is retried here: a failed call fails that target for the
current cycle and the next cycle tries again.

AUTHENTICATION
---------------
Cloudflare accepts three credential styles.  ``select_auth`` picks the
first one configured, in this order:

  1. email + global API key   X-Auth-Email / X-Auth-Key
  2. API token                Authorization: Bearer <token>
  3. user service key         X-Auth-User-Service-Key
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

import httpx
from pydantic import ValidationError

from cloudflare_exporter.core.config import Settings
from cloudflare_exporter.models.access import ServiceToken
from cloudflare_exporter.models.analytics import ZoneAnalytics

logger = logging.getLogger(__name__)

AuthMethod = Literal["email", "token", "user_service_key"]


class CloudflareAPIError(Exception):
    """The API answered, but not with a usable result."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


@dataclass(frozen=True, slots=True)
class CloudflareAuth:
    method: AuthMethod
    headers: dict[str, str] = field(repr=False)


def select_auth(settings: Settings) -> CloudflareAuth:
    """Pick the authentication method from the configured credentials."""
    if settings.cloudflare_email and settings.cloudflare_key:
        return CloudflareAuth(
            "email",
            {
                "X-Auth-Email": settings.cloudflare_email,
                "X-Auth-Key": settings.cloudflare_key,
            },
        )
    if settings.cloudflare_token:
        return CloudflareAuth(
            "token", {"Authorization": f"Bearer {settings.cloudflare_token}"}
        )
    if settings.cloudflare_user_service_key:
        return CloudflareAuth(
            "user_service_key",
            {"X-Auth-User-Service-Key": settings.cloudflare_user_service_key},
        )
    raise ValueError("no Cloudflare authentication method provided")


class CloudflareAPI(Protocol):
    def zone_id_by_name(self, zone_name: str) -> str: ...

    def zone_analytics_dashboard(
        self, zone_id: str, since: datetime, continuous: bool = False
    ) -> ZoneAnalytics: ...

    def access_service_tokens(self, account_id: str) -> list[ServiceToken]: ...


def _format_since(since: datetime) -> str:
    if since.tzinfo is None:
        since = since.replace(tzinfo=UTC)
    return since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class CloudflareClient:
    """Synchronous client; one instance is shared by all update cycles."""

    def __init__(
        self,
        auth: CloudflareAuth,
        *,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.auth = auth
        self._http = httpx.Client(
            base_url=base_url,
            headers={**auth.headers, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: httpx.BaseTransport | None = None
    ) -> CloudflareClient:
        return cls(
            select_auth(settings),
            base_url=settings.api_base_url,
            timeout=settings.api_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> CloudflareClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        logger.debug("GET %s params=%s", path, params)
        try:
            response = self._http.get(path, params=params)
        except httpx.HTTPError as exc:
            raise CloudflareAPIError(f"GET {path}: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            raise CloudflareAPIError(
                f"GET {path}: HTTP {response.status_code}, unexpected response body",
                status_code=response.status_code,
            )

        errors = [
            f"{err.get('code')}: {err.get('message')}" if isinstance(err, dict) else str(err)
            for err in body.get("errors") or []
        ]
        if response.is_error or not body.get("success", False):
            raise CloudflareAPIError(
                f"GET {path}: HTTP {response.status_code}"
                + (f" ({'; '.join(errors)})" if errors else ""),
                status_code=response.status_code,
                errors=errors,
            )
        return body.get("result")

    def zone_id_by_name(self, zone_name: str) -> str:
        result = self._get("/zones", params={"name": zone_name}) or []
        if not result:
            raise CloudflareAPIError(f"zone could not be found: {zone_name}")
        if len(result) > 1:
            raise CloudflareAPIError(f"ambiguous zone name: {zone_name}")
        return str(result[0]["id"])

    def zone_analytics_dashboard(
        self, zone_id: str, since: datetime, continuous: bool = False
    ) -> ZoneAnalytics:
        result = self._get(
            f"/zones/{zone_id}/analytics/dashboard",
            params={
                "since": _format_since(since),
                "continuous": "true" if continuous else "false",
            },
        )
        try:
            return ZoneAnalytics.model_validate(result or {})
        except ValidationError as exc:
            raise CloudflareAPIError(f"malformed analytics for zone {zone_id}: {exc}") from exc

    def access_service_tokens(self, account_id: str) -> list[ServiceToken]:
        result = self._get(f"/accounts/{account_id}/access/service_tokens") or []
        try:
            return [ServiceToken.model_validate(item) for item in result]
        except ValidationError as exc:
            raise CloudflareAPIError(
                f"malformed service tokens for account {account_id}: {exc}"
            ) from exc
