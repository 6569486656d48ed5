# tests/core/test_error_handling.py

import logging
from unittest import mock

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    NoRegionError,
    ReadTimeoutError,
)

from ecr_copy.core.exceptions import (
    AccessDeniedError,
    AuthError,
    CopyError,
    NetworkError,
    TargetRepositoryError,
)
from ecr_copy.core.error_handling import (
    BatchOperationContextManager,
    client_error_code,
    translate_client_error,
    with_error_handling,
)


def _client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "TestOperation")


# --- Tests for translate_client_error ---

@pytest.mark.parametrize("code", ["ThrottlingException", "TooManyRequestsException", "ExpiredTokenException"])
def test_transient_codes_become_retryable_auth_errors(code):
    """Throttling and expired credentials are worth another attempt."""
    error = translate_client_error(_client_error(code), "get_authorization_token")
    assert type(error) is AuthError
    assert error.retryable is True


@pytest.mark.parametrize("code", ["AccessDenied", "AccessDeniedException"])
def test_access_denied_codes(code):
    """Access denied maps to the permission error."""
    error = translate_client_error(_client_error(code), "assume_role")
    assert isinstance(error, AccessDeniedError)
    assert error.exit_code == 4
    assert error.retryable is False


def test_missing_credentials_are_structural():
    """No credentials at all never succeeds on retry."""
    error = translate_client_error(NoCredentialsError(), "get_caller_identity")
    assert isinstance(error, AuthError)
    assert error.retryable is False


@pytest.mark.parametrize(
    "exc",
    [
        EndpointConnectionError(endpoint_url="https://sts.amazonaws.com"),
        ConnectTimeoutError(endpoint_url="https://api.ecr.us-east-1.amazonaws.com"),
        ReadTimeoutError(endpoint_url="https://api.ecr.us-east-1.amazonaws.com"),
    ],
)
def test_unreachable_endpoints_are_retryable_network_errors(exc):
    """Connection failures are network errors whatever the caller's default."""
    for default in (AuthError, TargetRepositoryError):
        error = translate_client_error(exc, "get_caller_identity", default)
        assert isinstance(error, NetworkError)
        assert error.retryable is True
        assert error.exit_code == 5


def test_unknown_codes_use_default_class():
    """Anything unrecognized becomes the caller's default error."""
    error = translate_client_error(_client_error("LimitExceededException"), "create_repository", TargetRepositoryError)
    assert isinstance(error, TargetRepositoryError)
    assert "create_repository" in str(error)


def test_client_error_code():
    """The AWS error code is read from the response."""
    assert client_error_code(_client_error("ImageNotFoundException")) == "ImageNotFoundException"
    assert client_error_code(ValueError("x")) == ""


# --- Tests for @with_error_handling decorator ---

@pytest.fixture
def mock_logger():
    """Fixture to mock the logger used by the decorator."""
    with mock.patch("logging.getLogger") as mock_get_logger:
        logger_instance = mock.MagicMock(spec=logging.Logger)
        mock_get_logger.return_value = logger_instance
        yield logger_instance


def test_with_error_handling_success(mock_logger):
    """Test decorator when the wrapped function succeeds."""
    @with_error_handling
    def successful_function(x, y):
        return x + y

    assert successful_function(2, 3) == 5
    mock_logger.error.assert_not_called()


def test_with_error_handling_translates_client_error(mock_logger):
    """Test decorator translates botocore ClientError and logs it."""
    @with_error_handling
    def denied_function():
        raise _client_error("AccessDeniedException")

    with pytest.raises(AccessDeniedError) as excinfo:
        denied_function()
    assert isinstance(excinfo.value.__cause__, ClientError)
    mock_logger.error.assert_called_once()
    assert "denied_function" in mock_logger.error.call_args[0][0]


def test_with_error_handling_translates_botocore_error(mock_logger):
    """Test decorator handles non-ClientError botocore failures."""
    @with_error_handling
    def regionless_function():
        raise NoRegionError()

    with pytest.raises(AuthError):
        regionless_function()


def test_with_error_handling_translates_connection_error(mock_logger):
    """Test an unreachable endpoint surfaces as a retryable network error."""
    @with_error_handling
    def unreachable_function():
        raise EndpointConnectionError(endpoint_url="https://sts.amazonaws.com")

    with pytest.raises(NetworkError) as excinfo:
        unreachable_function()
    assert excinfo.value.retryable is True


def test_with_error_handling_passes_copy_errors_through(mock_logger):
    """Test decorator re-raises the engine's own errors untouched."""
    @with_error_handling
    def failing_function():
        raise AuthError("Invalid role ARN", retryable=False)

    with pytest.raises(AuthError, match="Invalid role ARN"):
        failing_function()
    mock_logger.error.assert_not_called()


def test_with_error_handling_leaves_other_exceptions(mock_logger):
    """Test decorator does not swallow programming errors."""
    @with_error_handling
    def buggy_function():
        raise KeyError("Credentials")

    with pytest.raises(KeyError):
        buggy_function()


# --- Tests for BatchOperationContextManager ---

def test_batch_context_manager_no_errors(mock_logger):
    """Test BatchOperationContextManager when no errors occur."""
    with BatchOperationContextManager("Copy of 2 image(s)") as batch:
        pass

    assert not batch.errors
    mock_logger.info.assert_any_call("Starting Copy of 2 image(s).")
    mock_logger.info.assert_any_call("Copy of 2 image(s) completed successfully.")


def test_batch_context_manager_with_added_errors(mock_logger):
    """Test BatchOperationContextManager with errors added via add_error."""
    with BatchOperationContextManager("Copy") as batch:
        batch.add_error("TransferError: push failed", "svc-a:v1")
        batch.add_error("cancelled", "svc-b:v1")

    assert batch.errors == [
        {"item": "svc-a:v1", "error": "TransferError: push failed"},
        {"item": "svc-b:v1", "error": "cancelled"},
    ]
    mock_logger.warning.assert_called_once_with("Copy completed with 2 error(s).")
    mock_logger.error.assert_any_call("  Error 1/2 for 'svc-a:v1': TransferError: push failed")


def test_batch_context_manager_unhandled_exception(mock_logger):
    """Test BatchOperationContextManager logs and propagates unhandled exceptions."""
    with pytest.raises(CopyError, match="pool broke"):
        with BatchOperationContextManager("Copy"):
            raise CopyError("pool broke")

    mock_logger.error.assert_called_once()
    assert "failed due to an unhandled exception: pool broke" in mock_logger.error.call_args[0][0]
