"""Infrastructure exceptions for storage operations.

Storage errors extend PicxException so routes can map them to HTTP
responses consistently. Remote protocol failures carry the failing
operation name, HTTP status and response body.
"""

from typing import Any

from picx.domain.exceptions import PicxException

# Response bodies are kept in details for diagnostics; cap their size.
_MAX_BODY_CHARS = 2048


class StorageException(PicxException):
    """Base exception for storage operations."""


class StorageRemoteError(StorageException):
    """A remote protocol step returned a non-success response.

    Attributes:
        operation: Protocol step that failed (e.g. "preupload", "commit").
        status_code: HTTP status, or None when no response was received.
        body: Response body (truncated), or a transport error description.
    """

    default_error_code = "STORAGE_REMOTE_ERROR"
    action = "Remote storage operation failed"

    def __init__(
        self,
        key: str,
        operation: str,
        status_code: int | None,
        body: str = "",
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.key = key
        self.operation = operation
        self.status_code = status_code
        self.body = body[:_MAX_BODY_CHARS]
        status = status_code if status_code is not None else "no response"
        details: dict[str, Any] = {
            "key": key,
            "operation": operation,
            "status_code": status_code,
            "body": self.body,
        }
        if extra:
            details.update(extra)
        super().__init__(
            f"{self.action}: {key} ({operation}: {status} {self.body})".rstrip(),
            self.default_error_code,
            details,
        )


class StorageNegotiationError(StorageRemoteError):
    """Upload negotiation (preupload or LFS batch) failed."""

    default_error_code = "STORAGE_NEGOTIATION_ERROR"
    action = "Upload negotiation failed"


class StorageTransferError(StorageRemoteError):
    """Content transfer failed (single PUT, multipart part, completion, or verify)."""

    default_error_code = "STORAGE_TRANSFER_ERROR"
    action = "Content transfer failed"


class StorageCommitError(StorageRemoteError):
    """Commit linking path to content failed."""

    default_error_code = "STORAGE_COMMIT_ERROR"
    action = "Commit failed"


class StorageDeleteError(StorageRemoteError):
    """Delete returned a non-success status other than 404."""

    default_error_code = "STORAGE_DELETE_ERROR"
    action = "Failed to delete file"


class StorageVerificationTimeoutError(StorageException):
    """Committed content never became resolvable within the probe budget."""

    def __init__(
        self,
        file_path: str,
        attempts: int,
        statuses: dict[str, int | None],
    ) -> None:
        self.file_path = file_path
        self.attempts = attempts
        self.statuses = dict(statuses)
        super().__init__(
            f"Committed file not resolvable after {attempts} attempts: {file_path}",
            "STORAGE_VERIFICATION_TIMEOUT",
            {"file_path": file_path, "attempts": attempts, "statuses": self.statuses},
        )


class StorageUploadError(StorageException):
    """Bucket store upload failed."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to upload file: {file_path}",
            "STORAGE_UPLOAD_ERROR",
            {"file_path": file_path, "reason": reason},
        )


class StorageDownloadError(StorageException):
    """Bucket store read failed for a reason other than not-found."""

    def __init__(self, file_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to download file: {file_path}",
            "STORAGE_DOWNLOAD_ERROR",
            {"file_path": file_path, "reason": reason},
        )
