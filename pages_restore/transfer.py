"""Per-node mirrored transfers of snapshot content.

One task per node with a non-empty partition. Each task mirrors only the
listed content paths (``--files-from``), so ``--delete`` is scoped to
those paths and never prunes the rest of the node's tree. rsync is
idempotent per path; a failed run is repaired by running again.
"""

from __future__ import annotations

import logging
import subprocess
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pages_restore import metrics
from pages_restore.errors import TransferError
from pages_restore.modes import Transport

logger = logging.getLogger(__name__)

STDERR_TAIL = 500


@dataclass(frozen=True)
class TransferTask:
    """Mirror ``file_list``'s paths from the snapshot to one node."""
    node: str
    address: str
    file_list: Path
    path_count: int


@dataclass
class TransferResult:
    node: str
    success: bool
    exit_code: int = 0
    error: Optional[str] = None
    duration: float = 0.0


@runtime_checkable
class Transferrer(Protocol):
    """Executes one transfer task; must be safe to call concurrently for distinct nodes."""

    def transfer(self, task: TransferTask) -> TransferResult:
        ...


def build_transfer_tasks(
    partition: Dict[str, List[str]],
    file_lists: Dict[str, Path],
    transport: Transport,
) -> List[TransferTask]:
    """One task per node with at least one path, in partition order."""
    return [
        TransferTask(
            node=node,
            address=transport.address_for(node),
            file_list=file_lists[node],
            path_count=len(paths),
        )
        for node, paths in partition.items()
        if paths
    ]


class RsyncTransferrer:
    """Transfers with rsync over ssh, writing as the storage identity."""

    def __init__(
        self,
        source_dir: Path,
        remote_root: str,
        transport: Transport,
        remote_identity: str = "git",
        timeout: Optional[int] = None,
    ):
        self.source_dir = Path(source_dir)
        self.remote_root = remote_root.rstrip("/")
        self.transport = transport
        self.remote_identity = remote_identity
        self.timeout = timeout

    def build_command(self, task: TransferTask) -> List[str]:
        return [
            "rsync",
            # --files-from drops the recursion -a implies; content items are directories
            "-avrHR",
            "--delete",
            f"--rsync-path=sudo -u {self.remote_identity} rsync",
            "-e",
            self.transport.ssh.rsync_shell(),
            f"--files-from={task.file_list}",
            # "/./" anchors the relative paths at pages/ on both ends
            f"{self.source_dir}/./",
            f"{task.address}:{self.remote_root}/pages/",
        ]

    def transfer(self, task: TransferTask) -> TransferResult:
        cmd = self.build_command(task)
        logger.debug("rsync to %s: %s", task.node, " ".join(cmd))
        start = time.time()
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return TransferResult(
                node=task.node,
                success=False,
                exit_code=-1,
                error=f"rsync timed out after {self.timeout}s",
                duration=time.time() - start,
            )
        except OSError as e:
            return TransferResult(
                node=task.node,
                success=False,
                exit_code=-1,
                error=f"could not run rsync: {e}",
                duration=time.time() - start,
            )

        return TransferResult(
            node=task.node,
            success=proc.returncode == 0,
            exit_code=proc.returncode,
            error=(proc.stderr or "").strip()[-STDERR_TAIL:] or None,
            duration=time.time() - start,
        )


def _run_task(task: TransferTask, transferrer: Transferrer) -> TransferResult:
    logger.info("Restoring %d pages to %s", task.path_count, task.node)
    result = transferrer.transfer(task)
    if not result.success:
        metrics.TRANSFERS.labels(task.node, "failure").inc()
        raise TransferError(
            f"Transfer to {task.node} failed: {result.error or 'no error output'}",
            node=task.node,
            exit_code=result.exit_code,
            stderr=result.error,
        )
    metrics.TRANSFERS.labels(task.node, "success").inc()
    logger.debug("Transfer to %s finished in %.1fs", task.node, result.duration)
    return result


def dispatch_transfers(
    tasks: Sequence[TransferTask],
    transferrer: Transferrer,
    max_parallel: int = 1,
) -> List[TransferResult]:
    """Run every task, stopping at the first failure.

    With ``max_parallel == 1`` tasks run in order and later tasks never
    start once one fails. With more workers, tasks for distinct nodes run
    concurrently; on the first failure unstarted tasks are cancelled and
    the error is raised after running tasks finish. Completed transfers
    are never rolled back.

    Raises:
        TransferError: the first failing task
    """
    if max_parallel <= 1 or len(tasks) <= 1:
        return [_run_task(task, transferrer) for task in tasks]

    with ThreadPoolExecutor(max_workers=min(max_parallel, len(tasks))) as executor:
        futures: List[Future] = [
            executor.submit(_run_task, task, transferrer) for task in tasks
        ]
        _, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in pending:
            future.cancel()
        # first error in task order among the ones that finished
        for future in futures:
            if future.done() and not future.cancelled() and future.exception():
                raise future.exception()
        return [future.result() for future in futures]
