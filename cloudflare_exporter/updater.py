"""Periodic update loop.

THE LOOP
---------
  1. Run one update cycle (all accounts, then all zones)
  2. Log the outcome
  3. Sleep for the scrape interval
  4. Repeat until cancelled

A cycle makes blocking HTTP calls, so it runs in a worker thread via
``asyncio.to_thread``.  The event loop stays free to answer /metrics
scrapes while the cycle is in flight; the registry handles the
concurrent reads.

Cycles never overlap: the next one starts only after the previous one
finished and the interval elapsed.  Per-target failures are handled
inside the cycle; anything that still escapes is logged here and the
loop carries on.

Cancelling the loop while a cycle is in flight asks the cycle to stop
after its current target and waits for the worker thread to return,
so the API client is idle once the task is done.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from cloudflare_exporter.services.exporter import CloudflareExporter

logger = logging.getLogger(__name__)


async def run_updater(exporter: CloudflareExporter, interval: float) -> None:
    """Update forever, ``interval`` seconds apart."""
    logger.info(
        "Updater started  zones=%s accounts=%s interval=%ss",
        ",".join(exporter.zones),
        ",".join(exporter.accounts) if exporter.include_access else "-",
        interval,
    )

    while True:
        cycle = asyncio.ensure_future(asyncio.to_thread(exporter.update))
        try:
            result = await asyncio.shield(cycle)
            if result.failed:
                logger.warning("Targets skipped this cycle: %s", ", ".join(result.failed))
        except asyncio.CancelledError:
            # Threads ignore cancellation: stop between targets and wait.
            exporter.stop()
            with contextlib.suppress(Exception):
                await cycle
            raise
        except Exception:
            logger.exception("Update cycle failed")

        await asyncio.sleep(interval)
