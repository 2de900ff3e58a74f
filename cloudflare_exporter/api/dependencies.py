from __future__ import annotations

from fastapi import Request

from cloudflare_exporter.core.metrics import InstrumentRegistry
from cloudflare_exporter.services.exporter import CloudflareExporter


def get_exporter(request: Request) -> CloudflareExporter:
    """The exporter instance ``create_app`` attached to the application."""
    return request.app.state.exporter


def get_registry(request: Request) -> InstrumentRegistry:
    return request.app.state.exporter.registry
