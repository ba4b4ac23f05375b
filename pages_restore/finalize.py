"""Cluster finalize: commit placement decisions on the head host.

The full route table, not just one node's partition, is split into
chunks of at most ``FINALIZE_CHUNK_SIZE`` rows; each chunk is committed
by one remote finalize call. Chunks are independent and idempotent, so
they run on a bounded worker pool in any order.
"""

from __future__ import annotations

import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterator, Protocol, Sequence, runtime_checkable

from pages_restore import metrics
from pages_restore.config import FINALIZE_CHUNK_SIZE
from pages_restore.errors import FinalizeError, SSHError
from pages_restore.lifecycle import ScratchSpace
from pages_restore.routes import RouteEntry, format_routes
from pages_restore.ssh import RemoteShell

logger = logging.getLogger(__name__)

REMOTE_ROUTES_NAME = "pages.routes"


def chunk_routes(
    entries: Sequence[RouteEntry],
    size: int = FINALIZE_CHUNK_SIZE,
) -> Iterator[Sequence[RouteEntry]]:
    """Yield contiguous slices of at most ``size`` entries, covering each once."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(entries), size):
        yield entries[start:start + size]


@runtime_checkable
class Finalizer(Protocol):
    """Commits the placement of one chunk of route entries."""

    def finalize(self, index: int, chunk: Sequence[RouteEntry]) -> None:
        """Raises FinalizeError on failure."""
        ...


class SSHFinalizer:
    """Pipes each chunk into the finalize command on the head host."""

    def __init__(
        self,
        shell: RemoteShell,
        scratch: ScratchSpace,
        command: str,
    ):
        self.shell = shell
        self.scratch = scratch
        self.command = command

    def stage_routes(self, entries: Sequence[RouteEntry]) -> str:
        """Copy the full route table into remote scratch for inspection."""
        remote_path = posixpath.join(self.scratch.remote, REMOTE_ROUTES_NAME)
        try:
            self.shell.write_file(remote_path, format_routes(entries))
        except SSHError as e:
            raise FinalizeError(
                f"Could not stage routes on {self.shell.host}: {e.message}",
                host=self.shell.host,
                exit_code=e.exit_code,
                stderr=e.stderr,
            ) from e
        return remote_path

    def finalize(self, index: int, chunk: Sequence[RouteEntry]) -> None:
        try:
            self.shell.run(self.command, input_text=format_routes(chunk))
        except SSHError as e:
            raise FinalizeError(
                f"Finalize of chunk {index} ({len(chunk)} routes) failed "
                f"on {self.shell.host}: {e.message}",
                chunk_index=index,
                host=self.shell.host,
                exit_code=e.exit_code,
                stderr=e.stderr,
            ) from e


def finalize_routes(
    entries: Sequence[RouteEntry],
    finalizer: Finalizer,
    max_parallel: int = 4,
    chunk_size: int = FINALIZE_CHUNK_SIZE,
) -> int:
    """Finalize every chunk of ``entries``.

    Args:
        entries: The complete route table returned by the oracle
        finalizer: Chunk committer
        max_parallel: Upper bound on concurrent finalize calls
        chunk_size: Rows per chunk

    Returns:
        Number of chunks finalized.

    Raises:
        FinalizeError: the first chunk that failed; unstarted chunks are
            cancelled
    """
    chunks = list(chunk_routes(entries, chunk_size))
    if not chunks:
        return 0

    logger.info(
        "Finalizing %d routes in %d chunk(s)", len(entries), len(chunks)
    )
    workers = max(1, min(max_parallel, len(chunks)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(finalizer.finalize, index, chunk): index
            for index, chunk in enumerate(chunks)
        }
        for future in as_completed(futures):
            try:
                future.result()
            except FinalizeError:
                metrics.FINALIZE_CHUNKS.labels("failure").inc()
                for other in futures:
                    other.cancel()
                raise
            metrics.FINALIZE_CHUNKS.labels("success").inc()
            logger.debug("Finalized chunk %d", futures[future])
    return len(chunks)


def stage_and_finalize(
    entries: Sequence[RouteEntry],
    finalizer: Finalizer,
    max_parallel: int = 4,
    chunk_size: int = FINALIZE_CHUNK_SIZE,
) -> int:
    """Stage the route table when the finalizer supports it, then finalize."""
    stage = getattr(finalizer, "stage_routes", None)
    if stage is not None:
        stage(entries)
    return finalize_routes(entries, finalizer, max_parallel, chunk_size)
