"""Custom exceptions for the ECR copy engine."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Optional

from .models import ErrorInfo, ErrorKind
from .reporting import (
    EXIT_AUTH_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_GENERAL_FAILURE,
    EXIT_NETWORK_ERROR,
    EXIT_PERMISSION_ERROR,
    EXIT_SOURCE_NOT_FOUND,
    EXIT_TARGET_REPOSITORY_ERROR,
)


class CopyError(Exception):
    """Base exception for all copy engine errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    exit_code: int = EXIT_GENERAL_FAILURE
    default_retryable: bool = False

    def __init__(self, message: str = "", retryable: Optional[bool] = None):
        super().__init__(message)
        self.retryable = self.default_retryable if retryable is None else retryable

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=str(self), exit_code=self.exit_code)


class ConfigurationError(CopyError):
    """Malformed image reference or invalid run options."""

    kind = ErrorKind.CONFIG
    exit_code = EXIT_CONFIG_ERROR


class EnvironmentCheckError(CopyError):
    """No usable transfer backend on this host."""

    kind = ErrorKind.ENVIRONMENT


class AuthError(CopyError):
    """Credential, role or account lookup failure."""

    kind = ErrorKind.AUTH
    exit_code = EXIT_AUTH_ERROR


class AccessDeniedError(AuthError):
    """The resolved identity is not permitted to perform an operation."""

    kind = ErrorKind.PERMISSION
    exit_code = EXIT_PERMISSION_ERROR


class ImageValidationError(CopyError):
    """Pre-transfer existence check failed."""

    kind = ErrorKind.VALIDATION
    default_retryable = True


class SourceImageNotFoundError(ImageValidationError):
    """The source image does not exist."""

    kind = ErrorKind.SOURCE_NOT_FOUND
    exit_code = EXIT_SOURCE_NOT_FOUND


class TargetRepositoryError(ImageValidationError):
    """The target repository is unreachable or cannot be created."""

    kind = ErrorKind.TARGET_REPOSITORY
    exit_code = EXIT_TARGET_REPOSITORY_ERROR


class NetworkError(CopyError):
    """An AWS endpoint could not be reached or stopped responding."""

    kind = ErrorKind.NETWORK
    exit_code = EXIT_NETWORK_ERROR
    default_retryable = True


class TransferError(CopyError):
    """The transfer backend failed to copy the image."""

    kind = ErrorKind.TRANSFER
    exit_code = EXIT_NETWORK_ERROR
    default_retryable = True


class CopyTimeoutError(CopyError):
    """A job attempt exceeded its time budget."""

    kind = ErrorKind.TIMEOUT
    exit_code = EXIT_NETWORK_ERROR
    default_retryable = True


class VerificationFailure(str, Enum):
    MISMATCH = "Mismatch"
    MISSING = "Missing"


class VerificationError(CopyError):
    """Source and target digests could not be confirmed equal."""

    kind = ErrorKind.VERIFICATION
    default_retryable = True
    reason: VerificationFailure = VerificationFailure.MISMATCH


class DigestMismatchError(VerificationError):
    reason = VerificationFailure.MISMATCH


class DigestMissingError(VerificationError):
    reason = VerificationFailure.MISSING


class JobCancelledError(CopyError):
    """A job attempt was cancelled because the batch is failing fast."""

    kind = ErrorKind.CANCELLED


@contextmanager
def batch_error_handler() -> Any:
    """Context manager converting stray exceptions into a `CopyError`."""
    try:
        yield
    except CopyError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise CopyError(f"{type(exc).__name__}: {exc}") from exc
