"""Prometheus metrics for restore-pages.

Restores are one-shot processes, so nothing is served over HTTP; when a
``metrics_textfile`` is configured the registry is written out at the end
of the run for the node-exporter textfile collector.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Final, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, write_to_textfile

logger = logging.getLogger(__name__)

RESTORE_RUNS: Final[Counter] = Counter(
    "pages_restore_runs_total",
    "Total restore runs, labeled by outcome.",
    labelnames=("outcome",),  # restored/nothing_to_restore/no_routes/failed
)

CONTENT_PATHS_ENUMERATED: Final[Counter] = Counter(
    "pages_restore_content_paths_total",
    "Content paths found in restored snapshots.",
)

ROUTES_RESOLVED: Final[Counter] = Counter(
    "pages_restore_routes_total",
    "Route entries returned by the oracle, labeled by whether they were placed.",
    labelnames=("placed",),  # true/false
)

TRANSFERS: Final[Counter] = Counter(
    "pages_restore_transfers_total",
    "Node transfer tasks, labeled by node and result.",
    labelnames=("node", "result"),  # result: success/failure
)

FINALIZE_CHUNKS: Final[Counter] = Counter(
    "pages_restore_finalize_chunks_total",
    "Cluster finalize chunks, labeled by result.",
    labelnames=("result",),
)


def write_metrics(path: Optional[Path], registry: CollectorRegistry = REGISTRY) -> None:
    """Dump ``registry`` to a textfile; failures are logged, not raised."""
    if path is None:
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), registry)
    except OSError as e:
        logger.warning("Could not write metrics to %s: %s", path, e)
