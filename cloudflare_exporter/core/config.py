"""Process configuration for the exporter.

Every setting can come from two places:

  1. A command-line flag  (``--cloudflare.zones example.com``)
  2. An environment variable  (``CLOUDFLARE_ZONES=example.com``)

Flags win over the environment, the environment wins over the built-in
default.  The API secrets (key, token, user service key) are read from
the environment ONLY so they never show up in ``ps`` output.

Validation happens once, at startup.  A bad value raises ``ValueError``
and the process refuses to start: an exporter that silently scrapes
nothing is worse than one that crashes loudly.
"""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

DEFAULT_API_URL = "https://api.cloudflare.com/client/v4"

_TRUE_VALUES = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _split_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated list, dropping spaces and empty entries."""
    return tuple(item for item in raw.replace(" ", "").split(",") if item)


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    cloudflare_email: str
    cloudflare_key: str
    cloudflare_token: str
    cloudflare_user_service_key: str
    zones: tuple[str, ...]
    accounts: tuple[str, ...]
    since: str
    include_access: bool
    listen_addr: str
    scrape_interval: float
    api_base_url: str = DEFAULT_API_URL
    api_timeout: float = 30.0

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def strict_labels(self) -> bool:
        # Label schema mismatches fail fast everywhere except production.
        return not self.is_prod

    @property
    def listen_host(self) -> str:
        return self.listen_addr.rpartition(":")[0] or "0.0.0.0"

    @property
    def listen_port(self) -> int:
        return int(self.listen_addr.rpartition(":")[2])


def build_parser() -> argparse.ArgumentParser:
    """Command-line flags; every default mirrors an environment variable."""
    parser = argparse.ArgumentParser(
        prog="cloudflare-exporter",
        description="Export Cloudflare zone analytics as Prometheus metrics",
    )
    parser.add_argument(
        "--cloudflare.email",
        dest="email",
        default=_getenv("CLOUDFLARE_EMAIL", ""),
        help="email used for Cloudflare API email authentication, env: CLOUDFLARE_EMAIL",
    )
    parser.add_argument(
        "--cloudflare.zones",
        dest="zones",
        default=_getenv("CLOUDFLARE_ZONES", ""),
        help="(required) comma-separated list of zone names to scrape for metrics "
        "(e.g. 'example.com,example.org'), env: CLOUDFLARE_ZONES",
    )
    parser.add_argument(
        "--cloudflare.accounts",
        dest="accounts",
        default=_getenv("CLOUDFLARE_ACCOUNTS", ""),
        help="comma-separated list of account ids to scrape for metrics, "
        "env: CLOUDFLARE_ACCOUNTS",
    )
    parser.add_argument(
        "--cloudflare.since",
        dest="since",
        default=_getenv("CLOUDFLARE_SCRAPE_ANALYTICS_SINCE", "24h"),
        help="'since' parameter of calls to the Cloudflare Analytics API "
        "('Free' tenants have a minimum of 24h), env: CLOUDFLARE_SCRAPE_ANALYTICS_SINCE",
    )
    parser.add_argument(
        "--cloudflare.include-access",
        dest="include_access",
        action="store_true",
        default=_getenv("CLOUDFLARE_INCLUDE_ACCESS", "false").lower() in _TRUE_VALUES,
        help="enable access-related metrics, env: CLOUDFLARE_INCLUDE_ACCESS",
    )
    parser.add_argument(
        "--cloudflare.scrape-interval",
        dest="scrape_interval",
        default=_getenv("CLOUDFLARE_SCRAPE_INTERVAL", "60"),
        help="seconds between two update cycles, env: CLOUDFLARE_SCRAPE_INTERVAL",
    )
    parser.add_argument(
        "--web.listen-addr",
        dest="listen_addr",
        default=_getenv("EXPORTER_LISTEN_ADDR", "127.0.0.1:9199"),
        help="address for the exporter to bind to, env: EXPORTER_LISTEN_ADDR",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default=_getenv("LOG_LEVEL", "info"),
        help="debug|info|warning|error, env: LOG_LEVEL",
    )
    return parser


def _parse_seconds(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds (got {raw!r})") from None


def load_settings(argv: Sequence[str] | None = None) -> Settings:
    args = build_parser().parse_args(argv)

    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = str(args.log_level).strip().lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    scrape_interval = _parse_seconds("CLOUDFLARE_SCRAPE_INTERVAL", str(args.scrape_interval))
    if scrape_interval <= 0:
        raise ValueError(
            f"CLOUDFLARE_SCRAPE_INTERVAL must be positive (got {scrape_interval!r})"
        )
    api_timeout = _parse_seconds(
        "CLOUDFLARE_API_TIMEOUT", _getenv("CLOUDFLARE_API_TIMEOUT", "30")
    )

    listen_addr = str(args.listen_addr).strip()
    _, sep, port_raw = listen_addr.rpartition(":")
    if not sep or not port_raw.isdigit():
        raise ValueError(
            f"EXPORTER_LISTEN_ADDR must look like host:port (got {listen_addr!r})"
        )

    zones = _split_list(args.zones)
    accounts = _split_list(args.accounts)

    if not zones:
        raise ValueError(
            "no Cloudflare zones provided, please set CLOUDFLARE_ZONES "
            "or pass in --cloudflare.zones"
        )

    if args.include_access and not accounts:
        raise ValueError(
            "no Cloudflare accounts provided, needed in order to display "
            "access-related metrics, please set CLOUDFLARE_ACCOUNTS "
            "or pass in --cloudflare.accounts"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUE_VALUES,
        cloudflare_email=str(args.email).strip(),
        cloudflare_key=_getenv("CLOUDFLARE_KEY", ""),
        cloudflare_token=_getenv("CLOUDFLARE_TOKEN", ""),
        cloudflare_user_service_key=_getenv("CLOUDFLARE_USER_SERVICE_KEY", ""),
        zones=zones,
        accounts=accounts,
        since=str(args.since).strip(),
        include_access=bool(args.include_access),
        listen_addr=listen_addr,
        scrape_interval=scrape_interval,
        api_base_url=_getenv("CLOUDFLARE_API_URL", DEFAULT_API_URL).rstrip("/"),
        api_timeout=api_timeout,
    )
