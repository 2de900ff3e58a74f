"""Zone analytics dashboard payload (``/zones/{id}/analytics/dashboard``).

Only the ``totals`` block is modelled; the per-interval ``timeseries``
is ignored.  Every field defaults to zero or an empty breakdown so a
partially populated response (free plans omit some breakdowns) still
parses.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class SSLTotals(BaseModel):
    encrypted: int = 0
    unencrypted: int = 0


class RequestTotals(BaseModel):
    all: int = 0
    cached: int = 0
    uncached: int = 0
    content_type: dict[str, int] = Field(default_factory=dict)
    country: dict[str, int] = Field(default_factory=dict)
    ssl: SSLTotals = Field(default_factory=SSLTotals)
    http_status: dict[str, int] = Field(default_factory=dict)


class BandwidthTotals(BaseModel):
    all: int = 0
    cached: int = 0
    uncached: int = 0
    content_type: dict[str, int] = Field(default_factory=dict)
    country: dict[str, int] = Field(default_factory=dict)
    ssl: SSLTotals = Field(default_factory=SSLTotals)


class ThreatTotals(BaseModel):
    all: int = 0
    country: dict[str, int] = Field(default_factory=dict)
    type: dict[str, int] = Field(default_factory=dict)


class PageviewTotals(BaseModel):
    all: int = 0
    search_engine: dict[str, int] = Field(default_factory=dict)


class UniqueTotals(BaseModel):
    all: int = 0


class Totals(BaseModel):
    requests: RequestTotals = Field(default_factory=RequestTotals)
    bandwidth: BandwidthTotals = Field(default_factory=BandwidthTotals)
    threats: ThreatTotals = Field(default_factory=ThreatTotals)
    pageviews: PageviewTotals = Field(default_factory=PageviewTotals)
    uniques: UniqueTotals = Field(default_factory=UniqueTotals)


class ZoneAnalytics(BaseModel):
    """One analytics snapshot for a zone and lookback window."""

    totals: Totals = Field(default_factory=Totals)
