from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import cloudflare_exporter` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cloudflare_exporter.core.config import Settings  # noqa: E402
from cloudflare_exporter.core.metrics import InstrumentRegistry  # noqa: E402
from cloudflare_exporter.main import create_app  # noqa: E402
from cloudflare_exporter.models.access import ServiceToken  # noqa: E402
from cloudflare_exporter.models.analytics import ZoneAnalytics  # noqa: E402
from cloudflare_exporter.services.cloudflare import CloudflareAPIError  # noqa: E402
from cloudflare_exporter.services.exporter import CloudflareExporter  # noqa: E402

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class FakeCloudflareAPI:
    """In-memory stand-in for the Cloudflare API, no network needed.

    Zones, analytics and tokens are seeded per test; a name listed in
    ``broken`` makes the corresponding call raise CloudflareAPIError.
    """

    def __init__(self) -> None:
        self.zone_ids: dict[str, str] = {}
        self.analytics: dict[str, ZoneAnalytics] = {}
        self.tokens: dict[str, list[ServiceToken]] = {}
        self.broken: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.since_seen: dict[str, datetime] = {}

    def add_zone(self, name: str, zone_id: str, totals: dict | None = None) -> None:
        self.zone_ids[name] = zone_id
        self.analytics[zone_id] = ZoneAnalytics.model_validate({"totals": totals or {}})

    def zone_id_by_name(self, zone_name: str) -> str:
        self.calls.append(("zone_id_by_name", zone_name))
        if zone_name in self.broken or zone_name not in self.zone_ids:
            raise CloudflareAPIError(f"zone could not be found: {zone_name}")
        return self.zone_ids[zone_name]

    def zone_analytics_dashboard(
        self, zone_id: str, since: datetime, continuous: bool = False
    ) -> ZoneAnalytics:
        self.calls.append(("zone_analytics_dashboard", zone_id))
        self.since_seen[zone_id] = since
        if zone_id in self.broken:
            raise CloudflareAPIError("HTTP 500", status_code=500)
        return self.analytics[zone_id]

    def access_service_tokens(self, account_id: str) -> list[ServiceToken]:
        self.calls.append(("access_service_tokens", account_id))
        if account_id in self.broken:
            raise CloudflareAPIError("HTTP 403", status_code=403)
        return self.tokens.get(account_id, [])


def make_settings(**overrides) -> Settings:
    values: dict = {
        "app_env": "test",
        "log_level": "info",
        "log_json": False,
        "cloudflare_email": "",
        "cloudflare_key": "",
        "cloudflare_token": "secret-token",
        "cloudflare_user_service_key": "",
        "zones": ("example.com",),
        "accounts": (),
        "since": "24h",
        "include_access": False,
        "listen_addr": "127.0.0.1:9199",
        "scrape_interval": 60.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_api() -> FakeCloudflareAPI:
    return FakeCloudflareAPI()


@pytest.fixture
def registry() -> InstrumentRegistry:
    return InstrumentRegistry(strict=True)


@pytest.fixture
def exporter(fake_api: FakeCloudflareAPI, registry: InstrumentRegistry) -> CloudflareExporter:
    return CloudflareExporter(
        fake_api,
        registry,
        zones=["example.com"],
        since="24h",
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def client(exporter: CloudflareExporter) -> TestClient:
    app = create_app(make_settings(), exporter, start_updater=False)
    return TestClient(app)


def sample(registry: InstrumentRegistry, name: str, labels: dict | None = None) -> float | None:
    """Read one sample from the exporter's own registry (None if absent)."""
    return registry.collector_registry.get_sample_value(name, labels=labels or {})
