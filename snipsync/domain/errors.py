"""
Error taxonomy shared by every layer.

Each error says whether the failed operation left the data untouched
(`retryable=True`, safe to re-invoke) or may have partially applied.
"""

from __future__ import annotations

from typing import Any, Optional


class SnipSyncError(Exception):
    """Base class for all snipsync errors."""

    retryable: bool = True

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.cause = cause


class StorageUnavailable(SnipSyncError):
    """The canonical store medium cannot be read or written."""


class CorruptCollection(SnipSyncError):
    """The on-disk collection failed to parse or validate."""

    retryable = False


class MirrorUnreachable(SnipSyncError):
    """The backup mirror location is missing or unwritable (best-effort)."""


class InvalidImportFormat(SnipSyncError):
    """An import file was rejected before any merge was attempted."""

    retryable = False


class RecordNotFound(SnipSyncError, LookupError):
    def __init__(self, record_id: str, kind: str = "record") -> None:
        super().__init__(f"{kind} not found: {record_id}")
        self.record_id = record_id
        self.kind = kind


class InvalidMove(SnipSyncError, ValueError):
    """A re-parent would make a folder its own ancestor."""

    retryable = False


class RemoteSyncError(SnipSyncError):
    """Base for remote replica failures; may carry the partial report."""

    def __init__(
        self,
        message: str = "",
        *,
        cause: Optional[BaseException] = None,
        report: Any = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.report = report

    @property
    def partially_applied(self) -> bool:
        changed = getattr(self.report, "changed", None)
        return bool(changed)


class RemoteNotConfigured(RemoteSyncError):
    """No remote credential is configured."""


class RemoteAuthInvalid(RemoteSyncError):
    """Credential invalid or expired; the whole sync attempt is aborted."""

    retryable = False


class RemoteDocumentMissing(RemoteSyncError):
    def __init__(self, remote_id: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"remote document not found: {remote_id}", cause=cause)
        self.remote_id = remote_id


class RemoteUnavailable(RemoteSyncError):
    """Network failure or rate limit; the caller may retry later."""
