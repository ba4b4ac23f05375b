"""SSH command execution for restore-pages.

Every remote interaction (scratch allocation, route resolution, node
discovery, finalize) goes through ``RemoteShell.run``. The exit status of
the remote command itself is checked; output is parsed in Python rather
than through remote shell pipelines so a failing command cannot be hidden
by a downstream filter.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from pages_restore.errors import SSHError

logger = logging.getLogger(__name__)

# ssh reserves 255 for its own connection failures
SSH_CONNECTION_FAILURE = 255
STDERR_TAIL = 500


@dataclass(frozen=True)
class SSHConfig:
    """Connection settings for one remote host."""
    host: str
    port: int = 122
    user: str = "admin"
    ssh_key: Optional[str] = None
    connect_timeout: int = 30
    batch_mode: bool = True
    config_file: Optional[Path] = None
    extra_options: Sequence[str] = field(default_factory=tuple)

    def _options(self) -> List[str]:
        args: List[str] = []
        if self.port != 22:
            args.extend(["-p", str(self.port)])
        args.extend(["-l", self.user])
        if self.ssh_key:
            args.extend(["-i", str(Path(self.ssh_key).expanduser())])
        if self.config_file:
            args.extend(["-F", str(self.config_file)])
        args.extend(["-o", f"ConnectTimeout={self.connect_timeout}"])
        if self.batch_mode:
            args.extend(["-o", "BatchMode=yes"])
        args.extend(self.extra_options)
        return args

    def build_ssh_args(self, host: Optional[str] = None) -> List[str]:
        """Argument vector up to and including the destination host."""
        return ["ssh", *self._options(), f"{self.user}@{host or self.host}"]

    def rsync_shell(self) -> str:
        """The ``-e`` value rsync should use to reach a node."""
        return shlex.join(["ssh", "-q", *self._options()])


@dataclass
class SSHResult:
    """Outcome of one remote command."""
    success: bool
    output: str
    exit_code: int
    error: Optional[str] = None


class RemoteShell:
    """Runs commands on one remote host over ssh."""

    def __init__(self, config: SSHConfig, timeout: Optional[int] = None):
        self.config = config
        self.timeout = timeout

    @property
    def host(self) -> str:
        return self.config.host

    def run(
        self,
        command: str,
        input_text: Optional[str] = None,
        check: bool = True,
        timeout: Optional[int] = None,
        host: Optional[str] = None,
    ) -> SSHResult:
        """Run ``command`` remotely, optionally feeding ``input_text`` on stdin.

        Args:
            command: Remote shell command line
            input_text: Data written to the remote command's stdin
            check: Raise SSHError instead of returning a failed result
            timeout: Seconds before the local ssh process is killed
            host: Run on another host reachable with the same settings

        Raises:
            SSHError: when ``check`` is set and the command fails
        """
        target = host or self.config.host
        cmd = [*self.config.build_ssh_args(target), "--", command]
        logger.debug("ssh %s: %s", target, command)
        try:
            proc = subprocess.run(
                cmd,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            result = SSHResult(
                success=False,
                output="",
                exit_code=-1,
                error=f"timeout after {e.timeout}s",
            )
        except OSError as e:
            result = SSHResult(success=False, output="", exit_code=-1, error=str(e))
        else:
            result = SSHResult(
                success=proc.returncode == 0,
                output=proc.stdout,
                exit_code=proc.returncode,
                error=(proc.stderr or "").strip()[-STDERR_TAIL:] or None,
            )

        if not result.success:
            if result.exit_code == SSH_CONNECTION_FAILURE:
                logger.debug("ssh connection to %s failed", target)
            if check:
                raise SSHError(
                    f"Remote command failed on {target}: {command}: "
                    f"{result.error or 'no output'}",
                    host=target,
                    exit_code=result.exit_code,
                    stderr=result.error,
                )
        return result

    def write_file(self, remote_path: str, content: str) -> None:
        """Stream ``content`` into ``remote_path`` on the host."""
        self.run(f"cat > {shlex.quote(remote_path)}", input_text=content)
