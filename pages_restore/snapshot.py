"""Snapshot path enumeration.

A snapshot stores Pages content under ``pages/`` at a fixed depth; each
entry five levels down is one content item and its relative path is the
item's identifier.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from pages_restore.config import CONTENT_PATH_DEPTH, RestoreConfig
from pages_restore.errors import SnapshotNotFoundError

logger = logging.getLogger(__name__)


def resolve_snapshot_dir(config: RestoreConfig) -> Path:
    """Return the concrete snapshot directory, following ``current`` links.

    Raises:
        SnapshotNotFoundError: the label does not name a directory
    """
    snapshot_dir = config.snapshot_dir
    if not snapshot_dir.is_dir():
        raise SnapshotNotFoundError(
            f"Snapshot '{config.snapshot}' not found in {config.data_dir}",
            snapshot_dir=str(snapshot_dir),
        )
    return snapshot_dir.resolve()


def enumerate_content_paths(
    snapshot_dir: Path,
    depth: int = CONTENT_PATH_DEPTH,
) -> List[str]:
    """List the content paths present in a snapshot.

    Args:
        snapshot_dir: Snapshot root (the directory containing ``pages/``)
        depth: Number of path segments in a content identifier

    Returns:
        Sorted, de-duplicated relative paths of exactly ``depth`` segments.
        Empty when the snapshot has no ``pages/`` tree.

    Raises:
        SnapshotNotFoundError: ``snapshot_dir`` is missing
    """
    snapshot_dir = Path(snapshot_dir)
    if not snapshot_dir.is_dir():
        raise SnapshotNotFoundError(
            f"Snapshot directory not found: {snapshot_dir}",
            snapshot_dir=str(snapshot_dir),
        )

    pages_dir = snapshot_dir / "pages"
    if not pages_dir.is_dir():
        logger.debug("No pages/ directory in %s", snapshot_dir)
        return []

    found = set()
    for root, dirs, files in os.walk(pages_dir):
        rel = Path(root).relative_to(pages_dir)
        level = len(rel.parts) + 1
        if level == depth:
            for name in (*dirs, *files):
                found.add((rel / name).as_posix())
            # leaf-depth entries are identifiers; do not descend into them
            dirs[:] = []
        elif level > depth:
            dirs[:] = []

    paths = sorted(found)
    logger.debug("Enumerated %d content paths under %s", len(paths), pages_dir)
    return paths
