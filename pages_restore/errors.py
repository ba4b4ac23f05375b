"""
Pages Restore Error Hierarchy

Unified exception hierarchy for the restore-pages engine. All custom
exceptions inherit from PagesRestoreError so the CLI can map them onto
exit codes in one place.

Usage:
    from pages_restore.errors import TransferError

    try:
        dispatch_transfers(tasks, transferrer)
    except TransferError as e:
        logger.error(f"Transfer to {e.node} failed: {e.message}")
"""

from __future__ import annotations

from typing import Any

__all__ = [
    # Base error
    "PagesRestoreError",
    # Configuration errors
    "ConfigurationError",
    "SnapshotNotFoundError",
    # Transport errors
    "TransportError",
    "SSHError",
    "RouteResolutionError",
    "TransferError",
    "FinalizeError",
    "ScratchSpaceError",
]


class PagesRestoreError(Exception):
    """Base exception for all restore-pages errors.

    Attributes:
        code: Machine-readable error code for categorization
        message: Human-readable error description
        context: Additional context for debugging
    """
    code: str = "PAGES_RESTORE_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PagesRestoreError):
    """Invalid or missing configuration.

    Raised before any remote interaction takes place.
    """
    code: str = "CONFIGURATION_ERROR"


class SnapshotNotFoundError(ConfigurationError):
    """The requested snapshot directory does not exist."""
    code: str = "SNAPSHOT_NOT_FOUND"

    def __init__(
        self,
        message: str,
        snapshot_dir: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if snapshot_dir:
            self.context["snapshot_dir"] = snapshot_dir


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(PagesRestoreError):
    """Failure talking to the remote host, the oracle or a target node.

    Fatal to the run. Already completed node transfers are left in place;
    a later run converges them.

    Attributes:
        host: Remote host or node the failing subprocess talked to
        exit_code: Exit status of the failing subprocess
        phase: Restore phase the failure happened in
        stderr: Tail of the subprocess stderr
    """
    code: str = "TRANSPORT_ERROR"

    def __init__(
        self,
        message: str,
        host: str | None = None,
        exit_code: int | None = None,
        phase: str | None = None,
        stderr: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.host = host
        self.exit_code = exit_code
        self.phase = phase
        self.stderr = stderr
        if host:
            self.context["host"] = host
        if exit_code is not None:
            self.context["exit_code"] = exit_code
        if phase:
            self.context["phase"] = phase


class SSHError(TransportError):
    """SSH connection or remote command execution error."""
    code: str = "SSH_ERROR"


class RouteResolutionError(TransportError):
    """The routing oracle could not be reached or exited non-zero."""
    code: str = "ROUTE_RESOLUTION_ERROR"


class TransferError(TransportError):
    """A node transfer task failed."""
    code: str = "TRANSFER_ERROR"

    def __init__(
        self,
        message: str,
        node: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            host=node,
            exit_code=exit_code,
            phase="transfer",
            stderr=stderr,
            context=context,
        )
        self.node = node


class FinalizeError(TransportError):
    """A cluster finalize chunk failed on the head node."""
    code: str = "FINALIZE_ERROR"

    def __init__(
        self,
        message: str,
        chunk_index: int | None = None,
        host: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(
            message,
            host=host,
            exit_code=exit_code,
            phase="finalize",
            stderr=stderr,
            context=context,
        )
        self.chunk_index = chunk_index
        if chunk_index is not None:
            self.context["chunk_index"] = chunk_index


class ScratchSpaceError(TransportError):
    """Scratch space could not be allocated or written."""
    code: str = "SCRATCH_SPACE_ERROR"
