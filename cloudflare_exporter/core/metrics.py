"""Gauge registry backed by the Prometheus client library.

The exporter does not know its metric inventory up front in the way a
service usually does (one module-level ``Gauge(...)`` per metric).  The
label dimensions of a breakdown (country, content type, status code,
token name...) come from upstream data, and the metric names carry the
configured lookback window (``cloudflare_requests_rate24h``).  So
instruments are created lazily, on the first observation for a name.

LABEL SCHEMA
-------------
Prometheus fixes the label NAMES of a metric when it is created; only
label VALUES vary between samples.  The first observation for a metric
name therefore decides its schema, and every later observation must use
exactly the same label names.  A mismatch is a programming error in the
binding table, not something upstream data can cause:

  strict=True   raise LabelSchemaError immediately (dev/test)
  strict=False  keep the first schema, log a warning, drop the sample (prod)

GAUGES, NOT COUNTERS
---------------------
Cloudflare already aggregates totals over the lookback window.  Each
update OVERWRITES the value for a label combination; nothing accumulates.

STALE LABEL COMBINATIONS
-------------------------
A label combination (say country="NZ") that stops appearing upstream
keeps its last value until it is overwritten or the process restarts.
Nothing is pruned.

THREAD SAFETY
--------------
Updates run in a worker thread while /metrics scrapes read concurrently.
Registration (create-if-absent) is serialized by a lock here; setting a
child value and collecting are already locked inside prometheus_client.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from prometheus_client import CollectorRegistry, Gauge, generate_latest

logger = logging.getLogger(__name__)


class LabelSchemaError(ValueError):
    """A metric name was reused with a different set of label names."""


@dataclass(frozen=True, slots=True)
class LabelSet:
    """Immutable set of label name/value pairs for one observation.

    Pairs are kept sorted by name, so two label sets built from the same
    mapping in a different order are equal and derive the same schema.
    Values may be empty strings.
    """

    items: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        names = [name for name, _ in self.items]
        if any(not name for name in names):
            raise ValueError("label names must be non-empty")
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate label names in {names!r}")
        object.__setattr__(self, "items", tuple(sorted(self.items)))

    @classmethod
    def of(cls, labels: Mapping[str, str] | None = None, **kwargs: str) -> LabelSet:
        merged = {**(labels or {}), **kwargs}
        return cls(tuple((str(k), str(v)) for k, v in merged.items()))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.items)

    def with_label(self, name: str, value: str) -> LabelSet:
        """Return a copy with ``name`` set to ``value`` (added or replaced)."""
        merged = self.as_dict()
        merged[name] = value
        return LabelSet.of(merged)

    def as_dict(self) -> dict[str, str]:
        return dict(self.items)


@dataclass(slots=True)
class Instrument:
    """One registered gauge: name, help and label schema are fixed."""

    name: str
    help: str
    label_names: tuple[str, ...]
    gauge: Gauge = field(repr=False)

    def set(self, labels: LabelSet, value: float) -> None:
        if labels.names != self.label_names:
            raise LabelSchemaError(
                f"metric {self.name!r} has labels {self.label_names!r}, "
                f"got {labels.names!r}"
            )
        if self.label_names:
            self.gauge.labels(**labels.as_dict()).set(float(value))
        else:
            self.gauge.set(float(value))

    def values(self) -> dict[tuple[str, ...], float]:
        """Current value per label-value tuple (ordered like ``label_names``)."""
        result: dict[tuple[str, ...], float] = {}
        for metric in self.gauge.collect():
            for sample in metric.samples:
                key = tuple(sample.labels[name] for name in self.label_names)
                result[key] = sample.value
        return result


class InstrumentRegistry:
    """Owns every gauge the exporter creates.

    Instruments are registered into a dedicated ``CollectorRegistry``
    rather than the process-wide default one, so tests can build as many
    independent registries as they like and the HTTP layer serves exactly
    what this object holds.
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        *,
        strict: bool = True,
    ) -> None:
        self.collector_registry = registry if registry is not None else CollectorRegistry()
        self.strict = strict
        self._instruments: dict[str, Instrument] = {}
        self._lock = threading.Lock()

    def ensure(
        self, name: str, help_text: str, label_names: Iterable[str]
    ) -> Instrument:
        """Return the instrument for ``name``, creating it on first use.

        Help text and label schema from the first call win.
        """
        schema = tuple(sorted(label_names))
        with self._lock:
            instrument = self._instruments.get(name)
            if instrument is None:
                gauge = Gauge(
                    name,
                    help_text,
                    schema,
                    registry=self.collector_registry,
                )
                instrument = Instrument(name, help_text, schema, gauge)
                self._instruments[name] = instrument
                logger.debug("Registered gauge %s labels=%s", name, ",".join(schema))
                return instrument

        if instrument.label_names != schema:
            if self.strict:
                raise LabelSchemaError(
                    f"metric {name!r} was registered with labels "
                    f"{instrument.label_names!r}, got {schema!r}"
                )
            logger.warning(
                "Label schema mismatch for %s: registered=%s requested=%s",
                name,
                ",".join(instrument.label_names),
                ",".join(schema),
            )
        return instrument

    def get(self, name: str) -> Instrument | None:
        with self._lock:
            return self._instruments.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._instruments)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._instruments

    def __len__(self) -> int:
        with self._lock:
            return len(self._instruments)

    def set_gauge(
        self, name: str, help_text: str, labels: LabelSet, value: float
    ) -> None:
        """Record ``value`` for ``labels`` on gauge ``name``, overwriting."""
        instrument = self.ensure(name, help_text, labels.names)
        if instrument.label_names != labels.names:
            # Only reachable when not strict: ensure() already raised otherwise.
            return
        instrument.set(labels, value)

    def set_gauge_by_label(
        self,
        base_labels: LabelSet,
        name: str,
        help_text: str,
        label_key: str,
        values_by_key: Mapping[str, float],
    ) -> None:
        """One gauge sample per breakdown entry, labelled ``label_key=<key>``.

        The instrument is registered even when ``values_by_key`` is empty.
        """
        if label_key in base_labels.names:
            raise LabelSchemaError(
                f"breakdown label {label_key!r} collides with base labels "
                f"{base_labels.names!r}"
            )
        schema = base_labels.with_label(label_key, "")
        instrument = self.ensure(name, help_text, schema.names)
        if instrument.label_names != schema.names:
            return
        for key, value in values_by_key.items():
            instrument.set(base_labels.with_label(label_key, key), value)

    def render(self) -> bytes:
        """Text exposition of every registered gauge."""
        return generate_latest(self.collector_registry)
