"""Restore orchestration.

    INIT -> ENUMERATE -> (empty? DONE) -> RESOLVE_ROUTES -> (empty? DONE)
         -> PARTITION -> TRANSFER -> (cluster? FINALIZE) -> DONE

Scratch space is held for the whole run after INIT and released however
the run ends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from pages_restore import metrics
from pages_restore.config import RestoreConfig
from pages_restore.errors import PagesRestoreError
from pages_restore.finalize import Finalizer, SSHFinalizer, stage_and_finalize
from pages_restore.lifecycle import ScratchSpace, scratch_space
from pages_restore.modes import RestoreMode, Transport, select_mode
from pages_restore.partition import partition_routes, write_partition_files
from pages_restore.routes import RouteOracle, SSHRouteOracle, restrict_to_submitted
from pages_restore.snapshot import enumerate_content_paths, resolve_snapshot_dir
from pages_restore.ssh import RemoteShell, SSHConfig
from pages_restore.transfer import (
    RsyncTransferrer,
    TransferResult,
    Transferrer,
    build_transfer_tasks,
    dispatch_transfers,
)

logger = logging.getLogger(__name__)

PARTITION_DIR = "partitions"


class RestorePhase(str, Enum):
    INIT = "init"
    ENUMERATE = "enumerate"
    RESOLVE_ROUTES = "resolve_routes"
    PARTITION = "partition"
    TRANSFER = "transfer"
    FINALIZE = "finalize"
    DONE = "done"


class RestoreStatus(str, Enum):
    RESTORED = "restored"
    NOTHING_TO_RESTORE = "nothing_to_restore"
    NO_ROUTES = "no_routes"


@dataclass
class RestoreResult:
    status: RestoreStatus
    content_paths: int = 0
    routes: int = 0
    nodes: List[str] = field(default_factory=list)
    transfers: List[TransferResult] = field(default_factory=list)
    finalize_chunks: int = 0

    @property
    def message(self) -> str:
        if self.status is RestoreStatus.NOTHING_TO_RESTORE:
            return "Pages snapshot is empty, nothing to restore"
        if self.status is RestoreStatus.NO_ROUTES:
            return "No routes found for pages, nothing to restore"
        return (
            f"Restored {self.content_paths} pages to "
            f"{len(self.nodes)} node(s)"
        )


@dataclass
class RestoreComponents:
    oracle: RouteOracle
    transferrer: Transferrer
    finalizer: Optional[Finalizer] = None


# (scratch, transport, snapshot_dir) -> components for one run
ComponentFactory = Callable[[ScratchSpace, Transport, Path], RestoreComponents]


def ssh_config_for(config: RestoreConfig, host: str) -> SSHConfig:
    user = config.ssh_user
    if "@" in host:
        user, host = host.split("@", 1)
    return SSHConfig(
        host=host,
        port=config.ssh_port,
        user=user,
        ssh_key=config.ssh_key,
        connect_timeout=config.connect_timeout,
        extra_options=config.extra_ssh_options,
    )


def ssh_components(config: RestoreConfig, shell: RemoteShell) -> ComponentFactory:
    """Factory for the production oracle, rsync transferrer and finalizer."""

    def build(scratch: ScratchSpace, transport: Transport, snapshot_dir: Path) -> RestoreComponents:
        return RestoreComponents(
            oracle=SSHRouteOracle(shell, scratch, config.route_command),
            transferrer=RsyncTransferrer(
                source_dir=snapshot_dir / "pages",
                remote_root=config.remote_data_root,
                transport=transport,
                remote_identity=config.remote_identity,
                timeout=config.command_timeout,
            ),
            finalizer=SSHFinalizer(shell, scratch, config.finalize_command),
        )

    return build


class PagesRestore:
    """Replays a Pages snapshot onto one host or cluster."""

    def __init__(
        self,
        config: RestoreConfig,
        host: str,
        shell: Optional[RemoteShell] = None,
        mode: Optional[RestoreMode] = None,
        components: Optional[ComponentFactory] = None,
    ):
        self.config = config
        self.ssh = ssh_config_for(config, host)
        self.shell = shell or RemoteShell(self.ssh, timeout=config.command_timeout)
        self.mode = mode or select_mode(config)
        self.components = components or ssh_components(config, self.shell)
        self.phase = RestorePhase.INIT

    @property
    def host(self) -> str:
        return self.ssh.host

    def run(self) -> RestoreResult:
        """Run the restore.

        Returns:
            RestoreResult; expected-empty conditions are successful results.

        Raises:
            PagesRestoreError: configuration or transport failure, tagged
                with the phase it happened in
        """
        self.phase = RestorePhase.INIT
        try:
            result = self._run()
        except PagesRestoreError as e:
            e.context.setdefault("phase", self.phase.value)
            metrics.RESTORE_RUNS.labels("failed").inc()
            raise
        self.phase = RestorePhase.DONE
        metrics.RESTORE_RUNS.labels(result.status.value).inc()
        logger.info(result.message)
        return result

    def _run(self) -> RestoreResult:
        snapshot_dir = resolve_snapshot_dir(self.config)
        logger.debug(
            "Restoring pages from %s to %s (%s mode)",
            snapshot_dir,
            self.host,
            self.mode.name,
        )

        with scratch_space(self.shell) as scratch:
            self.phase = RestorePhase.ENUMERATE
            paths = enumerate_content_paths(snapshot_dir, self.config.content_depth)
            metrics.CONTENT_PATHS_ENUMERATED.inc(len(paths))
            if not paths:
                logger.warning("Pages backup is empty, nothing to restore")
                return RestoreResult(status=RestoreStatus.NOTHING_TO_RESTORE)

            targets = self.mode.discover_targets(self.shell)
            transport = self.mode.build_transport(self.config, self.ssh, scratch, targets)
            components = self.components(scratch, transport, snapshot_dir)

            self.phase = RestorePhase.RESOLVE_ROUTES
            resolved = components.oracle.resolve(paths)
            entries = restrict_to_submitted(resolved, paths)
            placed = sum(1 for e in entries if e.is_placed)
            metrics.ROUTES_RESOLVED.labels("true").inc(placed)
            metrics.ROUTES_RESOLVED.labels("false").inc(len(entries) - placed)

            self.phase = RestorePhase.PARTITION
            partition = partition_routes(entries)
            if not partition:
                logger.warning("No routes found for pages, nothing to restore")
                return RestoreResult(
                    status=RestoreStatus.NO_ROUTES,
                    content_paths=len(paths),
                    routes=len(entries),
                )
            self._check_nodes(partition, targets)
            file_lists = write_partition_files(partition, scratch.local / PARTITION_DIR)

            self.phase = RestorePhase.TRANSFER
            tasks = build_transfer_tasks(partition, file_lists, transport)
            transfers = dispatch_transfers(
                tasks,
                components.transferrer,
                max_parallel=self.config.parallel_transfers,
            )

            chunks = 0
            if self.mode.finalizes and components.finalizer is not None:
                self.phase = RestorePhase.FINALIZE
                chunks = stage_and_finalize(
                    entries,
                    components.finalizer,
                    max_parallel=self.config.finalize_parallelism,
                    chunk_size=self.config.finalize_chunk_size,
                )

        return RestoreResult(
            status=RestoreStatus.RESTORED,
            content_paths=len(paths),
            routes=len(entries),
            nodes=list(partition),
            transfers=transfers,
            finalize_chunks=chunks,
        )

    def _check_nodes(self, partition, targets: Sequence[str]) -> None:
        if not self.mode.finalizes:
            return
        unknown = sorted(set(partition) - set(targets))
        if unknown:
            logger.warning(
                "Routes name nodes missing from the cluster node list: %s",
                ", ".join(unknown),
            )
