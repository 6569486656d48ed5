"""Core models, errors and shared utilities for the ECR copy engine."""

from .image_utils import parse_image_ref, parse_image_refs
from .logging_config import (
    get_logger,
    set_log_level,
    setup_logger,
)
from .exceptions import (
    AccessDeniedError,
    AuthError,
    ConfigurationError,
    CopyError,
    CopyTimeoutError,
    DigestMismatchError,
    DigestMissingError,
    EnvironmentCheckError,
    ImageValidationError,
    JobCancelledError,
    SourceImageNotFoundError,
    TargetRepositoryError,
    TransferError,
    VerificationError,
    VerificationFailure,
)
from .models import (
    AssumeRoleAuth,
    BatchResult,
    CachedToken,
    CopyOutcome,
    CopyState,
    EnvironmentAuth,
    ErrorKind,
    HostCapabilities,
    ImageRef,
    OutcomeState,
    ProfileAuth,
    RegistryEndpoint,
    RunConfig,
    RunSpec,
)

__all__ = [
    "AccessDeniedError",
    "AssumeRoleAuth",
    "AuthError",
    "BatchResult",
    "CachedToken",
    "ConfigurationError",
    "CopyError",
    "CopyOutcome",
    "CopyState",
    "CopyTimeoutError",
    "DigestMismatchError",
    "DigestMissingError",
    "EnvironmentAuth",
    "EnvironmentCheckError",
    "ErrorKind",
    "HostCapabilities",
    "ImageRef",
    "ImageValidationError",
    "JobCancelledError",
    "OutcomeState",
    "ProfileAuth",
    "RegistryEndpoint",
    "RunConfig",
    "RunSpec",
    "SourceImageNotFoundError",
    "TargetRepositoryError",
    "TransferError",
    "VerificationError",
    "VerificationFailure",
    "get_logger",
    "parse_image_ref",
    "parse_image_refs",
    "set_log_level",
    "setup_logger",
]
