"""Route resolution against the remote routing oracle.

Placement is computed on the appliance, which knows the cluster topology;
this module only ships the content paths across and parses the answer.

Wire format, request: one content path per line.
Wire format, response: ``path node_1 node_2 ... node_k`` per line; a line
with no node tokens means the oracle made no placement decision for that
path and it is skipped.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence, Tuple, runtime_checkable

from pages_restore.errors import RouteResolutionError, ScratchSpaceError, SSHError
from pages_restore.lifecycle import ScratchSpace
from pages_restore.ssh import RemoteShell

logger = logging.getLogger(__name__)

PATH_LIST_NAME = "pages.list"
ROUTES_LIST_NAME = "pages.routes"


@dataclass(frozen=True)
class RouteEntry:
    """The oracle's placement decision for one content path."""
    path: str
    nodes: Tuple[str, ...] = ()

    @property
    def is_placed(self) -> bool:
        return bool(self.nodes)

    def to_line(self) -> str:
        return " ".join((self.path, *self.nodes))


def parse_routes(text: str) -> List[RouteEntry]:
    """Parse an oracle response into route entries, blank lines ignored."""
    entries = []
    for line in text.splitlines():
        tokens = line.split()
        if not tokens:
            continue
        entries.append(RouteEntry(path=tokens[0], nodes=tuple(tokens[1:])))
    return entries


def format_routes(entries: Iterable[RouteEntry]) -> str:
    """Serialize route entries to the newline-delimited wire format."""
    return "".join(f"{entry.to_line()}\n" for entry in entries)


def restrict_to_submitted(
    entries: Iterable[RouteEntry],
    paths: Sequence[str],
) -> List[RouteEntry]:
    """Drop entries for paths that were never sent to the oracle."""
    submitted = set(paths)
    kept = []
    unknown = 0
    for entry in entries:
        if entry.path in submitted:
            kept.append(entry)
        else:
            unknown += 1
            logger.debug("Oracle returned unrequested path %s", entry.path)
    if unknown:
        logger.warning("Ignored %d unrequested route(s)", unknown)
    return kept


def format_paths(paths: Iterable[str]) -> str:
    return "".join(f"{path}\n" for path in paths)


@runtime_checkable
class RouteOracle(Protocol):
    """Maps content paths to the nodes that should hold them."""

    def resolve(self, paths: Sequence[str]) -> List[RouteEntry]:
        """Return one entry per routed path; an empty list means no routes.

        Raises:
            RouteResolutionError: the oracle could not be reached or failed
        """
        ...


class SSHRouteOracle:
    """Runs the routing oracle on the appliance over ssh."""

    def __init__(self, shell: RemoteShell, scratch: ScratchSpace, command: str):
        self.shell = shell
        self.scratch = scratch
        self.command = command

    def resolve(self, paths: Sequence[str]) -> List[RouteEntry]:
        remote_list = posixpath.join(self.scratch.remote, PATH_LIST_NAME)
        try:
            self.shell.write_file(remote_list, format_paths(paths))
            result = self.shell.run(f"{self.command} < {shlex.quote(remote_list)}")
        except SSHError as e:
            raise RouteResolutionError(
                f"Route resolution failed on {self.shell.host}: {e.message}",
                host=self.shell.host,
                exit_code=e.exit_code,
                phase="resolve_routes",
                stderr=e.stderr,
            ) from e

        routes_file = Path(self.scratch.local) / ROUTES_LIST_NAME
        try:
            routes_file.write_text(result.output)
        except OSError as e:
            raise ScratchSpaceError(
                f"Could not save oracle response to {routes_file}: {e}",
                phase="resolve_routes",
            ) from e

        entries = parse_routes(result.output)
        logger.debug(
            "Oracle on %s returned %d routes for %d paths",
            self.shell.host,
            len(entries),
            len(paths),
        )
        return entries
