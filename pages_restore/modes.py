"""Single-host and cluster restore modes.

The mode is picked once at startup. It answers two questions for the rest
of the pipeline: which nodes can receive content, and how rsync reaches a
node. Everything downstream is mode-agnostic.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from pages_restore.config import RestoreConfig
from pages_restore.errors import ScratchSpaceError, SSHError, TransportError
from pages_restore.lifecycle import ScratchSpace
from pages_restore.ssh import RemoteShell, SSHConfig

logger = logging.getLogger(__name__)

SSH_CONFIG_NAME = "ssh_config"


@dataclass(frozen=True)
class Transport:
    """How transfer tasks reach their nodes."""
    ssh: SSHConfig
    # Single-host restores send every node's partition to this address
    fixed_address: Optional[str] = None

    def address_for(self, node: str) -> str:
        return self.fixed_address or node


class RestoreMode(Protocol):
    name: str
    finalizes: bool

    def discover_targets(self, shell: RemoteShell) -> List[str]:
        ...

    def build_transport(
        self,
        config: RestoreConfig,
        ssh: SSHConfig,
        scratch: ScratchSpace,
        targets: Sequence[str],
    ) -> Transport:
        ...


class SingleHostMode:
    """The appliance is the only storage node."""

    name = "single"
    finalizes = False

    def discover_targets(self, shell: RemoteShell) -> List[str]:
        return [shell.host]

    def build_transport(
        self,
        config: RestoreConfig,
        ssh: SSHConfig,
        scratch: ScratchSpace,
        targets: Sequence[str],
    ) -> Transport:
        return Transport(ssh=ssh, fixed_address=ssh.host)


class ClusterMode:
    """Pages storage is sharded across cluster nodes behind the head host.

    Nodes are not directly reachable; an ssh config in local scratch
    proxies every node connection through the head host.
    """

    name = "cluster"
    finalizes = True

    def __init__(self, nodes_command: str):
        self.nodes_command = nodes_command

    def discover_targets(self, shell: RemoteShell) -> List[str]:
        try:
            result = shell.run(self.nodes_command)
        except SSHError as e:
            raise TransportError(
                f"Could not list cluster nodes on {shell.host}: {e.message}",
                host=shell.host,
                exit_code=e.exit_code,
                phase="discover_targets",
                stderr=e.stderr,
            ) from e
        nodes = list(dict.fromkeys(result.output.split()))
        if not nodes:
            raise TransportError(
                f"{shell.host} reported no pages storage nodes",
                host=shell.host,
                phase="discover_targets",
            )
        logger.debug("Cluster pages nodes: %s", ", ".join(nodes))
        return nodes

    def build_transport(
        self,
        config: RestoreConfig,
        ssh: SSHConfig,
        scratch: ScratchSpace,
        targets: Sequence[str],
    ) -> Transport:
        config_file = write_ssh_config(Path(scratch.local), ssh, targets)
        return Transport(ssh=replace(ssh, config_file=config_file))


def write_ssh_config(directory: Path, ssh: SSHConfig, nodes: Sequence[str]) -> Path:
    """Write an ssh_config that reaches ``nodes`` through the head host."""
    proxy = [
        "ssh",
        "-q",
        "-p",
        str(ssh.port),
        "-l",
        ssh.user,
        *(["-i", str(Path(ssh.ssh_key).expanduser())] if ssh.ssh_key else []),
        *ssh.extra_options,
        ssh.host,
        "nc.openbsd %h %p",
    ]
    lines = [
        f"Host {' '.join(nodes)}",
        "  ServerAliveInterval 60",
        f"  ProxyCommand {shlex.join(proxy[:-1])} {proxy[-1]}",
        "  StrictHostKeyChecking no",
        "",
    ]
    path = directory / SSH_CONFIG_NAME
    try:
        path.write_text("\n".join(lines))
    except OSError as e:
        raise ScratchSpaceError(
            f"Could not write ssh config to {path}: {e}",
            phase="build_transport",
        ) from e
    return path


def select_mode(config: RestoreConfig) -> RestoreMode:
    if config.cluster:
        return ClusterMode(config.nodes_command)
    return SingleHostMode()
