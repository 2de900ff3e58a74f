"""Process entry point.

RUN:  python -m cloudflare_exporter --cloudflare.zones example.com
      (or: cloudflare-exporter ..., once installed)

Configuration errors (no zones, no credentials, bad values) are fatal:
they are logged and the process exits with status 1 before binding
the listen address.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence

import uvicorn

from cloudflare_exporter.core.config import load_settings
from cloudflare_exporter.core.logging import setup_logging
from cloudflare_exporter.main import build_exporter, create_app

logger = logging.getLogger("cloudflare_exporter")


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = load_settings(argv)
    except ValueError as e:
        setup_logging("info")
        logger.error("Invalid configuration: %s", e)
        return 1

    setup_logging(settings.log_level, json_format=settings.log_json)

    try:
        exporter = build_exporter(settings)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    app = create_app(settings, exporter)

    logger.info(
        "serving metrics at http://%s/metrics  env=%s auth=%s since=%s",
        settings.listen_addr,
        settings.app_env,
        exporter.api.auth.method,  # type: ignore[attr-defined]
        settings.since,
    )
    uvicorn.run(
        app,
        host=settings.listen_host,
        port=settings.listen_port,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
