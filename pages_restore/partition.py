"""Invert a route table into one file list per destination node."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Dict, Iterable, List, Set

from pages_restore.errors import ScratchSpaceError
from pages_restore.routes import RouteEntry

PARTITION_SUFFIX = ".rsync"

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


def partition_routes(entries: Iterable[RouteEntry]) -> Dict[str, List[str]]:
    """Group content paths by node.

    Each path is appended to the list of every node its entry names, in
    the order the entries were first submitted. Entries without nodes are
    skipped. A node gets each path once, even when the path is repeated
    within one entry or across entries.
    """
    partition: Dict[str, List[str]] = {}
    seen: Dict[str, Set[str]] = {}
    for entry in entries:
        for node in entry.nodes:
            node_seen = seen.setdefault(node, set())
            if entry.path in node_seen:
                continue
            node_seen.add(entry.path)
            partition.setdefault(node, []).append(entry.path)
    return partition


def partition_file_name(node: str) -> str:
    return _UNSAFE_NAME.sub("_", node) + PARTITION_SUFFIX


def _unique_file_name(node: str, used: Set[str]) -> str:
    name = partition_file_name(node)
    if name in used:
        digest = hashlib.sha1(node.encode("utf-8")).hexdigest()[:8]
        name = f"{_UNSAFE_NAME.sub('_', node)}-{digest}{PARTITION_SUFFIX}"
    used.add(name)
    return name


def write_partition_files(
    partition: Dict[str, List[str]],
    directory: Path,
) -> Dict[str, Path]:
    """Write ``<node>.rsync`` file lists (rsync ``--files-from`` format).

    Node ids that sanitize to the same name get a hash suffix so every
    node keeps its own list.

    Returns:
        Mapping of node id to its file list path.

    Raises:
        ScratchSpaceError: the lists could not be written to local scratch
    """
    directory = Path(directory)
    files: Dict[str, Path] = {}
    used: Set[str] = set()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        for node, paths in partition.items():
            path = directory / _unique_file_name(node, used)
            path.write_text("".join(f"{p}\n" for p in paths))
            files[node] = path
    except OSError as e:
        raise ScratchSpaceError(
            f"Could not write partition files to {directory}: {e}",
            phase="partition",
            context={"directory": str(directory)},
        ) from e
    return files
