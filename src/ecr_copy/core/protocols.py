"""Protocol definitions for dependency injection and testability."""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from .cancellation import CancelToken
from .commands import CommandResult
from .models import ImageRef


class StsClientProtocol(Protocol):
    """Protocol for STS client operations."""

    def get_caller_identity(self) -> Dict[str, Any]:
        ...

    def assume_role(
        self, RoleArn: str, RoleSessionName: str, DurationSeconds: int
    ) -> Dict[str, Any]:
        ...


class EcrClientProtocol(Protocol):
    """Protocol for ECR client operations."""

    def get_authorization_token(self) -> Dict[str, Any]:
        ...

    def describe_images(
        self, repositoryName: str, imageIds: List[Dict[str, str]]
    ) -> Dict[str, Any]:
        ...

    def describe_repositories(self, repositoryNames: List[str]) -> Dict[str, Any]:
        ...

    def create_repository(self, repositoryName: str) -> Dict[str, Any]:
        ...


class SessionProtocol(Protocol):
    """The subset of boto3.Session used by the credential resolver."""

    def client(self, service_name: str, **kwargs: Any) -> Any:
        ...


class SessionFactoryProtocol(Protocol):
    """Builds sessions; mirrors the boto3.Session constructor arguments."""

    def __call__(
        self,
        profile_name: Optional[str] = None,
        region_name: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
    ) -> SessionProtocol:
        ...


class CommandRunnerProtocol(Protocol):
    """Protocol for running external tools."""

    def run(
        self,
        args: Sequence[str],
        cancel_token: Optional[CancelToken] = None,
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
    ) -> CommandResult:
        ...


class RegistryClientProtocol(Protocol):
    """Existence checks and digest lookups against a registry."""

    def ensure_source_image(self, credentials: Any, image: ImageRef) -> None:
        ...

    def ensure_target_repository(self, credentials: Any, repository: str) -> None:
        ...

    def get_digest(self, credentials: Any, image: ImageRef) -> Optional[str]:
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        ...
