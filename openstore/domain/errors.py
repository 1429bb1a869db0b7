# openstore/domain/errors.py
"""
Error taxonomy for package submissions.

Every expected failure of the ingestion pipeline is a SubmissionError tagged
with one ErrorKind. The HTTP layer selects status code and message from the
kind alone (see STATUS_BY_KIND); anything that is not a SubmissionError is
treated as an unexpected infrastructure failure.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INVALID_FILE_KIND = "InvalidFileKind"
    PENDING_REVIEW = "PendingReview"
    MALFORMED_MANIFEST = "MalformedManifest"
    DUPLICATE_PACKAGE = "DuplicatePackage"
    PACKAGE_MISMATCH = "PackageMismatch"
    PERMISSION_DENIED = "PermissionDenied"
    NOT_FOUND = "NotFound"
    UNREADABLE_PACKAGE = "UnreadablePackage"
    REVIEW_TOOL_ERROR = "ReviewToolError"
    STORAGE_FAILURE = "StorageFailure"
    CONCURRENT_UPDATE = "ConcurrentUpdate"


DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_FILE_KIND: "The file must be a click or snap package",
    ErrorKind.PENDING_REVIEW: "This app needs to be reviewed manually",
    ErrorKind.MALFORMED_MANIFEST: "Your package manifest is malformed",
    ErrorKind.DUPLICATE_PACKAGE: "A package with the same name already exists",
    ErrorKind.PACKAGE_MISMATCH: "The uploaded package does not match the name of the package you are editing",
    ErrorKind.PERMISSION_DENIED: "You do not have permission to update this app",
    ErrorKind.NOT_FOUND: "App not found",
    ErrorKind.UNREADABLE_PACKAGE: "Your package could not be read, it may be corrupt",
    ErrorKind.REVIEW_TOOL_ERROR: "Your package could not be reviewed, it may be corrupt",
    ErrorKind.STORAGE_FAILURE: "The package could not be stored",
    ErrorKind.CONCURRENT_UPDATE: "The app was modified by another request, please try again",
}

# 500 marks infrastructure failures: logged in full, answered with a generic message
STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_FILE_KIND: 400,
    ErrorKind.PENDING_REVIEW: 400,
    ErrorKind.MALFORMED_MANIFEST: 400,
    ErrorKind.DUPLICATE_PACKAGE: 400,
    ErrorKind.PACKAGE_MISMATCH: 400,
    ErrorKind.PERMISSION_DENIED: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNREADABLE_PACKAGE: 400,
    ErrorKind.REVIEW_TOOL_ERROR: 400,
    ErrorKind.STORAGE_FAILURE: 500,
    ErrorKind.CONCURRENT_UPDATE: 409,
}


class SubmissionError(Exception):
    """A tagged, expected failure of the submission pipeline."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None, **detail: Any):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self.detail = detail
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def is_infrastructure(self) -> bool:
        return self.status_code >= 500

    def __repr__(self) -> str:
        return f"SubmissionError({self.kind.value!r}, {self.message!r})"
