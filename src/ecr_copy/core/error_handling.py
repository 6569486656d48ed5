# src/ecr_copy/core/error_handling.py

import functools
import logging
from typing import Type

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ProfileNotFound,
    ReadTimeoutError,
)

from .exceptions import AccessDeniedError, AuthError, CopyError, NetworkError

THROTTLING_ERROR_CODES = (
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
)
ACCESS_DENIED_ERROR_CODES = (
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
)
EXPIRED_CREDENTIAL_ERROR_CODES = ("ExpiredToken", "ExpiredTokenException", "RequestExpired")
NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


def client_error_code(exc: BaseException) -> str:
    """Return the AWS error code carried by a botocore ClientError, or ''."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "") or ""
    return ""


def translate_client_error(
    exc: Exception,
    operation: str,
    default: Type[CopyError] = AuthError,
) -> CopyError:
    """
    Map a botocore failure onto the copy error taxonomy.

    Throttling and expired credentials become retryable `AuthError`s and
    unreachable endpoints a retryable `NetworkError`. Access-denied codes
    become `AccessDeniedError`, missing or unknown profiles are structural
    `AuthError`s. Everything else becomes `default`.
    """
    if isinstance(exc, NETWORK_ERRORS):
        return NetworkError(f"{operation} failed, endpoint unreachable: {exc}")
    code = client_error_code(exc)
    if code in THROTTLING_ERROR_CODES:
        return AuthError(f"{operation} throttled: {exc}", retryable=True)
    if code in EXPIRED_CREDENTIAL_ERROR_CODES:
        return AuthError(f"{operation} failed, credentials expired: {exc}", retryable=True)
    if code in ACCESS_DENIED_ERROR_CODES:
        return AccessDeniedError(f"{operation} denied: {exc}")
    if isinstance(exc, (NoCredentialsError, ProfileNotFound)):
        return AuthError(f"{operation} failed: {exc}", retryable=False)
    return default(f"{operation} failed: {exc}")


def with_error_handling(func):
    """
    A decorator translating botocore errors raised by AWS calls into
    `CopyError`s, logging them on the way out.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("ecr-copy." + func.__name__)
        try:
            return func(*args, **kwargs)
        except CopyError:
            raise
        except (ClientError, BotoCoreError) as e:
            translated = translate_client_error(e, func.__name__)
            logger.error(f"Error in '{func.__name__}': {translated}")
            raise translated from e
    return wrapper


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name="Batch Operation"):
        self.operation_name = operation_name
        self.errors = []
        self.logger = logging.getLogger("ecr-copy." + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for '{error_detail['item']}': "
                    f"{error_detail['error']}"
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item"):
        """
        Record an error for a specific item within the 'with' block.

        Args:
            error_message (str): The error message or exception string.
            item_identifier (str): A string identifying the item that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for '{item_identifier}' in {self.operation_name}: {error_message}")
