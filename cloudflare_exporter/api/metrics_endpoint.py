"""Prometheus metrics endpoint.

Prometheus calls this every scrape interval.  The response is plain
text in the exposition format, one line per label combination:

  # HELP cloudflare_requests_rate24h Total number of requests over the last 24h
  # TYPE cloudflare_requests_rate24h gauge
  cloudflare_requests_rate24h{zone_id="023e105f4ecef8ad9ca31a8372d0c353",zone_name="example.com"} 1000.0

A scrape never triggers an upstream call: it renders whatever the
last update cycles left in the registry, stale or not.  Upstream
failures are only visible in the logs.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from cloudflare_exporter.api.dependencies import get_registry
from cloudflare_exporter.core.metrics import InstrumentRegistry

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
def metrics(
    registry: Annotated[InstrumentRegistry, Depends(get_registry)],
) -> Response:
    """Expose every registered gauge in text exposition format."""
    return Response(
        content=registry.render(),
        media_type=CONTENT_TYPE_LATEST,
    )
