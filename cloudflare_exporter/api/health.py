"""Liveness endpoint.

Always answers 200 while the process can respond.  The body reports
the outcome of the last finished update cycle so an operator can see
at a glance which targets failed without grepping logs:

  status: "ok"       no cycle yet, or the last cycle updated every target
          "degraded" the last cycle skipped at least one target
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from cloudflare_exporter.api.dependencies import get_exporter
from cloudflare_exporter.services.exporter import CloudflareExporter

router = APIRouter(tags=["health"])


@router.get("/health")
def health(
    exporter: Annotated[CloudflareExporter, Depends(get_exporter)],
) -> dict:
    cycle = exporter.last_cycle
    return {
        "status": "ok" if cycle is None or cycle.ok else "degraded",
        "last_cycle": cycle.as_dict() if cycle is not None else None,
    }
