"""Translate Cloudflare snapshots into gauges.

This module is the metric inventory of the exporter: ``ZONE_METRICS``
lists every zone gauge in one place, the way a service usually keeps
its ``Counter``/``Gauge`` definitions together.  Each entry says where
the value lives in the analytics totals and, for breakdowns, which
label the breakdown key becomes.

Metric names carry the lookback window as a suffix.  With the default
``since=24h`` the total request count is exported as:

  cloudflare_requests_rate24h{zone_id="...",zone_name="example.com"} 1000.0

and the per-country breakdown as:

  cloudflare_requests_country_rate24h{country="US",zone_id="...",zone_name="example.com"} 500.0

FAILURE ISOLATION
------------------
One update cycle walks the accounts, then the zones, in configured
order.  A target that fails (unknown zone, bad lookback window, API
error) is logged and skipped; the others are still updated.  There is
no retry inside a cycle: the next cycle simply tries again.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from operator import attrgetter
from typing import Any

from cloudflare_exporter.core.duration import parse_duration
from cloudflare_exporter.core.logging import bind_target
from cloudflare_exporter.core.metrics import InstrumentRegistry, LabelSet
from cloudflare_exporter.services.cloudflare import CloudflareAPI, CloudflareAPIError

logger = logging.getLogger(__name__)

_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")


@dataclass(frozen=True, slots=True)
class ZoneMetric:
    """Binding of one field of the analytics totals to one gauge.

    name:      metric name; the lookback window is appended (``..._rate24h``)
    help:      help text; ``{since}`` is replaced by the lookback window
    path:      dotted attribute path below ``ZoneAnalytics.totals``
    by_label:  label for breakdown keys, or None for a scalar total
    """

    name: str
    help: str
    path: str
    by_label: str | None = None

    def value(self, totals: Any) -> Any:
        return attrgetter(self.path)(totals)


ZONE_METRICS: tuple[ZoneMetric, ...] = (
    # requests
    ZoneMetric(
        "cloudflare_requests_rate",
        "Total number of requests over the last {since}",
        "requests.all",
    ),
    ZoneMetric(
        "cloudflare_requests_cached_rate",
        "Total number of cached requests over the last {since}",
        "requests.cached",
    ),
    ZoneMetric(
        "cloudflare_requests_uncached_rate",
        "Total number of uncached requests over the last {since}",
        "requests.uncached",
    ),
    ZoneMetric(
        "cloudflare_requests_content_type_rate",
        "Total number of requests over the last {since} by response Content-Type header",
        "requests.content_type",
        by_label="content_type",
    ),
    ZoneMetric(
        "cloudflare_requests_country_rate",
        "Total number of requests over the last {since} by request country",
        "requests.country",
        by_label="country",
    ),
    ZoneMetric(
        "cloudflare_requests_encrypted_rate",
        "Total number of encrypted requests over the last {since}",
        "requests.ssl.encrypted",
    ),
    ZoneMetric(
        "cloudflare_requests_unencrypted_rate",
        "Total number of unencrypted requests over the last {since}",
        "requests.ssl.unencrypted",
    ),
    ZoneMetric(
        "cloudflare_requests_status_rate",
        "Total number of requests over the last {since} by response code",
        "requests.http_status",
        by_label="status",
    ),
    # bandwidth
    ZoneMetric(
        "cloudflare_bandwidth_bytes_rate",
        "Total bandwidth over the last {since}",
        "bandwidth.all",
    ),
    ZoneMetric(
        "cloudflare_bandwidth_cached_bytes_rate",
        "Total cached bandwidth over the last {since}",
        "bandwidth.cached",
    ),
    ZoneMetric(
        "cloudflare_bandwidth_uncached_bytes_rate",
        "Total uncached bandwidth over the last {since}",
        "bandwidth.uncached",
    ),
    ZoneMetric(
        "cloudflare_bandwidth_content_type_bytes_rate",
        "Total bandwidth over the last {since} by response Content-Type header",
        "bandwidth.content_type",
        by_label="content_type",
    ),
    ZoneMetric(
        "cloudflare_bandwidth_country_bytes_rate",
        "Total bandwidth over the last {since} by request country",
        "bandwidth.country",
        by_label="country",
    ),
    ZoneMetric(
        "cloudflare_bandwidth_encrypted_bytes_rate",
        "Total encrypted bandwidth over the last {since}",
        "bandwidth.ssl.encrypted",
    ),
    ZoneMetric(
        "cloudflare_bandwidth_unencrypted_bytes_rate",
        "Total unencrypted bandwidth over the last {since}",
        "bandwidth.ssl.unencrypted",
    ),
    # threats
    ZoneMetric(
        "cloudflare_threats_rate",
        "Total mitigated threats over the last {since}",
        "threats.all",
    ),
    ZoneMetric(
        "cloudflare_threats_country_rate",
        "Total mitigated threats over the last {since} by request country",
        "threats.country",
        by_label="country",
    ),
    ZoneMetric(
        "cloudflare_threats_type_rate",
        "Total mitigated threats over the last {since} by type",
        "threats.type",
        by_label="type",
    ),
    # pageviews / uniques
    ZoneMetric(
        "cloudflare_pageviews_rate",
        "Total page views over the last {since}",
        "pageviews.all",
    ),
    ZoneMetric(
        "cloudflare_pageviews_search_engine_rate",
        "Total page views over the last {since} by search engine",
        "pageviews.search_engine",
        by_label="search_engine",
    ),
    ZoneMetric(
        "cloudflare_uniques_rate",
        "Total unique visitors over the last {since}",
        "uniques.all",
    ),
)

SERVICE_TOKEN_EXPIRATION = "access_service_token_expiration"
SERVICE_TOKEN_EXPIRATION_HELP = (
    "The current unix timestamp at which a service token expires"
)


@dataclass(slots=True)
class CycleResult:
    """Outcome of one ``update()`` call, per target."""

    started_at: datetime
    finished_at: datetime | None = None
    updated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "updated": list(self.updated),
            "failed": list(self.failed),
        }


class CloudflareExporter:
    def __init__(
        self,
        api: CloudflareAPI,
        registry: InstrumentRegistry,
        *,
        zones: Sequence[str],
        accounts: Sequence[str] = (),
        since: str = "24h",
        include_access: bool = False,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.api = api
        self.registry = registry
        self.zones = tuple(zones)
        self.accounts = tuple(accounts)
        self.since = since
        self.include_access = include_access
        self._now = now or (lambda: datetime.now(UTC))
        self.last_cycle: CycleResult | None = None
        self._stopping = threading.Event()

    def stop(self) -> None:
        """Make a running cycle return after its current target."""
        self._stopping.set()

    def update(self) -> CycleResult:
        """Run one full update cycle: accounts first (if enabled), then zones."""
        result = CycleResult(started_at=self._now())

        targets: list[tuple[str, Callable[[str], bool], str]] = []
        if self.include_access:
            targets += [(f"account:{a}", self.update_account, a) for a in self.accounts]
        targets += [(f"zone:{z}", self.update_zone, z) for z in self.zones]

        for target, run, key in targets:
            if self._stopping.is_set():
                logger.info("Stop requested, cycle ends before %s", target)
                break
            with bind_target(target):
                try:
                    applied = run(key)
                except Exception:
                    logger.exception("Unexpected error while updating %s", target)
                    applied = False
            (result.updated if applied else result.failed).append(target)

        result.finished_at = self._now()
        self.last_cycle = result
        logger.info(
            "Update cycle finished  updated=%d failed=%d",
            len(result.updated),
            len(result.failed),
        )
        return result

    def update_account(self, account_id: str) -> bool:
        try:
            tokens = self.api.access_service_tokens(account_id)
        except CloudflareAPIError as exc:
            logger.error("cloudflare.access_service_tokens(%s): %s", account_id, exc)
            return False

        expirations: dict[str, float] = {}
        for token in tokens:
            if token.expires_at is None:
                logger.debug("Service token %s has no expiry, skipped", token.name)
                continue
            expirations[token.name] = float(int(token.expires_at.timestamp()))

        self.registry.set_gauge_by_label(
            LabelSet.of(account_id=account_id),
            SERVICE_TOKEN_EXPIRATION,
            SERVICE_TOKEN_EXPIRATION_HELP,
            "token_name",
            expirations,
        )
        return True

    def update_zone(self, zone_name: str) -> bool:
        try:
            zone_id = self.api.zone_id_by_name(zone_name)
        except CloudflareAPIError as exc:
            logger.error("cloudflare.zone_id_by_name(%s): %s", zone_name, exc)
            return False

        try:
            lookback = parse_duration(self.since)
        except ValueError as exc:
            logger.error("parse_duration(%s): %s", self.since, exc)
            return False
        if not _METRIC_NAME_RE.fullmatch(ZONE_METRICS[0].name + self.since):
            logger.error("lookback window %r cannot be part of a metric name", self.since)
            return False

        since = self._now() - lookback
        try:
            data = self.api.zone_analytics_dashboard(zone_id, since, continuous=False)
        except CloudflareAPIError as exc:
            logger.error("cloudflare.zone_analytics_dashboard(%s): %s", zone_id, exc)
            return False

        base_labels = LabelSet.of(zone_id=zone_id, zone_name=zone_name)
        for metric in ZONE_METRICS:
            name = metric.name + self.since
            help_text = metric.help.format(since=self.since)
            value = metric.value(data.totals)
            if metric.by_label is None:
                self.registry.set_gauge(name, help_text, base_labels, value)
            else:
                self.registry.set_gauge_by_label(
                    base_labels, name, help_text, metric.by_label, value
                )

        logger.debug("Zone %s (%s) updated", zone_name, zone_id)
        return True

