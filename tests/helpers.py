"""In-memory stand-ins for the remote collaborators of a restore.

The ssh shell, routing oracle, rsync transferrer and finalizer fakes
record what they were asked to do so tests can assert on it.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from pages_restore.errors import FinalizeError, SSHError
from pages_restore.modes import Transport
from pages_restore.pipeline import RestoreComponents
from pages_restore.routes import RouteEntry
from pages_restore.ssh import SSHConfig, SSHResult
from pages_restore.transfer import TransferResult, TransferTask


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeShell:
    """Stands in for RemoteShell; remote scratch lives under a local dir."""

    def __init__(self, remote_root: Path, host: str = "ghe.example.com"):
        self.config = SSHConfig(host=host)
        self.remote_root = Path(remote_root)
        self.commands: List[str] = []
        self.inputs: Dict[str, str] = {}
        self.fail_on: Dict[str, int] = {}
        self.responses: Dict[str, str] = {}
        self.created: List[str] = []
        self.removed: List[str] = []

    @property
    def host(self) -> str:
        return self.config.host

    def run(self, command, input_text=None, check=True, timeout=None, host=None):
        self.commands.append(command)
        if input_text is not None:
            self.inputs[command] = input_text
        for prefix, code in self.fail_on.items():
            if command.startswith(prefix):
                if check:
                    raise SSHError(
                        f"Remote command failed on {self.host}: {command}",
                        host=self.host,
                        exit_code=code,
                    )
                return SSHResult(success=False, output="", exit_code=code, error="boom")
        for prefix, output in self.responses.items():
            if command.startswith(prefix):
                return SSHResult(success=True, output=output, exit_code=0)
        if command.startswith("mktemp"):
            path = self.remote_root / f"scratch{len(self.created)}"
            path.mkdir(parents=True)
            self.created.append(str(path))
            return SSHResult(success=True, output=f"{path}\n", exit_code=0)
        if command.startswith("rm -rf"):
            target = command.split(" ", 2)[2].strip("'")
            self.removed.append(target)
            shutil.rmtree(target, ignore_errors=True)
            return SSHResult(success=True, output="", exit_code=0)
        return SSHResult(success=True, output="", exit_code=0)

    def write_file(self, remote_path: str, content: str) -> None:
        self.run(f"cat > {remote_path}", input_text=content)


class FakeOracle:
    """Routes every path to the nodes picked by ``route``."""

    def __init__(self, route: Callable[[str], Sequence[str]] = lambda p: ("node-1",)):
        self.route = route
        self.calls: List[List[str]] = []

    def resolve(self, paths):
        self.calls.append(list(paths))
        return [RouteEntry(path=p, nodes=tuple(self.route(p))) for p in paths]


class FakeTransferrer:
    """Records tasks; nodes listed in ``fail_nodes`` report a failure."""

    def __init__(self, fail_nodes: Optional[Dict[str, int]] = None):
        self.fail_nodes = fail_nodes or {}
        self.tasks: List[TransferTask] = []

    def transfer(self, task: TransferTask) -> TransferResult:
        self.tasks.append(task)
        if task.node in self.fail_nodes:
            return TransferResult(
                node=task.node,
                success=False,
                exit_code=self.fail_nodes[task.node],
                error="ssh: connect to host port 122: Connection refused",
            )
        return TransferResult(node=task.node, success=True)


class MirrorTransferrer:
    """Mirrors listed paths into ``<target_root>/<node>/pages`` on local disk.

    Deletion is scoped to the listed paths, like ``rsync --delete
    --files-from``. ``changes`` counts files written or removed.
    """

    def __init__(self, source_dir: Path, target_root: Path):
        self.source_dir = Path(source_dir)
        self.target_root = Path(target_root)
        self.changes = 0
        self.tasks: List[TransferTask] = []

    def transfer(self, task: TransferTask) -> TransferResult:
        self.tasks.append(task)
        dest_root = self.target_root / task.node / "pages"
        for rel in task.file_list.read_text().split():
            self._mirror(self.source_dir / rel, dest_root / rel)
        return TransferResult(node=task.node, success=True)

    def _mirror(self, src: Path, dest: Path) -> None:
        if src.is_dir():
            dest.mkdir(parents=True, exist_ok=True)
            wanted = {child.name for child in src.iterdir()}
            for child in dest.iterdir():
                if child.name not in wanted:
                    if child.is_dir():
                        shutil.rmtree(child)
                    else:
                        child.unlink()
                    self.changes += 1
            for child in src.iterdir():
                self._mirror(child, dest / child.name)
            return
        data = src.read_bytes()
        if not dest.exists() or dest.read_bytes() != data:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)
            self.changes += 1


class FakeFinalizer:
    def __init__(self, fail_chunks: Sequence[int] = ()):
        self.fail_chunks = set(fail_chunks)
        self.chunks: Dict[int, List[RouteEntry]] = {}
        self.staged: Optional[List[RouteEntry]] = None

    def stage_routes(self, entries):
        self.staged = list(entries)
        return "/tmp/pages.routes"

    def finalize(self, index, chunk):
        if index in self.fail_chunks:
            raise FinalizeError(f"chunk {index} failed", chunk_index=index, exit_code=1)
        self.chunks[index] = list(chunk)


class FakeMode:
    """Cluster or single-host behaviour without remote node discovery."""

    def __init__(self, nodes: Sequence[str], cluster: bool):
        self.nodes = list(nodes)
        self.finalizes = cluster
        self.name = "cluster" if cluster else "single"

    def discover_targets(self, shell):
        return list(self.nodes)

    def build_transport(self, config, ssh, scratch, targets):
        if self.finalizes:
            return Transport(ssh=ssh)
        return Transport(ssh=ssh, fixed_address=ssh.host)


def make_content_paths(count: int) -> List[str]:
    """Generate ``count`` distinct 5-segment content paths."""
    paths = []
    for i in range(count):
        h = f"{i:06x}"
        paths.append(f"{h[0]}/{h[1:3]}/{h[3:5]}/{1000 + i}/{h}")
    return paths


def populate_snapshot(snapshot_dir: Path, paths: Sequence[str]) -> None:
    for rel in paths:
        item = snapshot_dir / "pages" / rel
        item.mkdir(parents=True, exist_ok=True)
        (item / "index.html").write_text(f"<h1>{rel}</h1>\n")


def components_for(oracle, transferrer, finalizer=None):
    def build(scratch, transport, snapshot_dir):
        return RestoreComponents(oracle=oracle, transferrer=transferrer, finalizer=finalizer)

    return build
