"""Scratch space ownership for a restore run.

Only ``scratch_space`` creates or removes scratch directories. Other
components write their intermediate files into it and never clean up.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from pages_restore.errors import PagesRestoreError, ScratchSpaceError, SSHError
from pages_restore.ssh import RemoteShell

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "pages-restore-"


@dataclass(frozen=True)
class ScratchSpace:
    """A local and a remote temporary directory for one run."""
    local: Path
    remote: str


def allocate_remote_dir(shell: RemoteShell, prefix: str = SCRATCH_PREFIX) -> str:
    try:
        result = shell.run(f"mktemp -d -t {shlex.quote(prefix + 'XXXXXX')}")
    except SSHError as e:
        raise ScratchSpaceError(
            f"Could not create remote scratch directory on {shell.host}: {e.message}",
            host=shell.host,
            exit_code=e.exit_code,
            phase="init",
            stderr=e.stderr,
        ) from e
    remote = result.output.strip()
    if not remote.startswith("/"):
        raise ScratchSpaceError(
            f"mktemp on {shell.host} returned an unusable path: {remote!r}",
            host=shell.host,
            phase="init",
        )
    return remote


def release(shell: RemoteShell, scratch: ScratchSpace) -> None:
    """Remove both directories; failures are logged and never raised."""
    shutil.rmtree(scratch.local, ignore_errors=True)
    try:
        shell.run(f"rm -rf {shlex.quote(scratch.remote)}")
    except PagesRestoreError as e:
        logger.warning(
            "Could not remove remote scratch %s on %s: %s",
            scratch.remote,
            shell.host,
            e,
        )


@contextmanager
def scratch_space(shell: RemoteShell, prefix: str = SCRATCH_PREFIX) -> Iterator[ScratchSpace]:
    """Allocate local and remote scratch directories, released on exit.

    Release happens on normal completion, early return and exceptions
    alike, and a cleanup failure never replaces the run's own outcome.

    Raises:
        ScratchSpaceError: the remote directory could not be created
    """
    local = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        remote = allocate_remote_dir(shell, prefix)
    except BaseException:
        shutil.rmtree(local, ignore_errors=True)
        raise

    scratch = ScratchSpace(local=local, remote=remote)
    logger.debug("Scratch space: local=%s remote=%s:%s", local, shell.host, remote)
    try:
        yield scratch
    finally:
        release(shell, scratch)
