"""Shared data models for the ECR copy engine."""

import base64
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class ErrorKind(str, Enum):
    """Classification of a failure, used for reporting and exit codes."""

    CONFIG = "ConfigError"
    ENVIRONMENT = "EnvironmentError"
    AUTH = "AuthError"
    PERMISSION = "PermissionError"
    VALIDATION = "ValidationError"
    SOURCE_NOT_FOUND = "SourceNotFoundError"
    TARGET_REPOSITORY = "TargetRepositoryError"
    NETWORK = "NetworkError"
    TRANSFER = "TransferError"
    TIMEOUT = "TimeoutError"
    VERIFICATION = "VerificationError"
    CANCELLED = "Cancelled"
    UNKNOWN = "UnknownError"


class CopyState(str, Enum):
    """Lifecycle states of one copy job."""

    PENDING = "pending"
    AUTHENTICATING = "authenticating"
    VALIDATING = "validating"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CopyState.SUCCEEDED, CopyState.FAILED, CopyState.CANCELLED)


class OutcomeState(str, Enum):
    """Terminal state reported for one image."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


class ImageRef(BaseModel):
    """An image reference (`repository:tag`)."""

    model_config = ConfigDict(frozen=True)

    repository: str
    tag: str

    @field_validator("repository", "tag")
    @classmethod
    def _no_blank_or_whitespace(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        if any(ch.isspace() for ch in value):
            raise ValueError("must not contain whitespace")
        return value

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}"


class RegistryEndpoint(BaseModel):
    """A registry host and the region it lives in."""

    model_config = ConfigDict(frozen=True)

    url: str
    region: str

    @classmethod
    def for_account(cls, account_id: str, region: str) -> "RegistryEndpoint":
        """Build the ECR endpoint for an AWS account and region."""
        return cls(url=f"{account_id}.dkr.ecr.{region}.amazonaws.com", region=region)

    def image_uri(self, image: ImageRef) -> str:
        return f"{self.url}/{image.repository}:{image.tag}"


class ProfileAuth(BaseModel):
    """Credentials from a named AWS profile."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["profile"] = "profile"
    name: str


class AssumeRoleAuth(BaseModel):
    """Temporary credentials from assuming an IAM role."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["assume_role"] = "assume_role"
    arn: str
    session_name: str = "ecr-copy"
    duration_seconds: int = 3600


class EnvironmentAuth(BaseModel):
    """Credentials or a role ARN taken from process environment variables."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["environment"] = "environment"


AuthSpec = Union[ProfileAuth, AssumeRoleAuth, EnvironmentAuth]


class CachedToken(BaseModel):
    """A registry authorization token and its expiry."""

    model_config = ConfigDict(frozen=True)

    endpoint: RegistryEndpoint
    token: SecretStr
    expires_at: datetime

    def is_expired(self, now: datetime, safety_margin: timedelta) -> bool:
        return now >= self.expires_at - safety_margin

    def basic_credentials(self) -> Tuple[str, str]:
        """Decode the ECR token into a (username, password) pair."""
        decoded = base64.b64decode(self.token.get_secret_value()).decode("utf-8")
        username, _, password = decoded.partition(":")
        return username, password


class HostCapabilities(BaseModel):
    """Which transfer tools are usable on this host."""

    direct_copy_tool: bool = False
    engine_daemon: bool = False


class RunConfig(BaseModel):
    """Options controlling one batch run."""

    concurrency: int = Field(default=1, ge=1)
    retry_limit: int = Field(default=0, ge=0)
    retry_delay_seconds: int = Field(default=0, ge=0)
    per_job_timeout_seconds: int = Field(default=900, ge=0)
    verify: bool = True
    fail_fast: bool = False
    force_pull_tag_push: bool = False
    create_target_repository: bool = True
    retry_on_digest_mismatch: bool = True
    token_safety_margin_seconds: int = Field(default=300, ge=0)


class RunSpec(BaseModel):
    """Everything needed to run one batch: images, credentials and options."""

    images: List[ImageRef]
    source_auth: AuthSpec = Field(discriminator="kind")
    target_auth: AuthSpec = Field(discriminator="kind")
    source_region: str
    target_region: str
    source_registry_url: Optional[str] = None
    target_registry_url: Optional[str] = None
    config: RunConfig = Field(default_factory=RunConfig)


class ErrorInfo(BaseModel):
    """Final error recorded for a failed or cancelled image."""

    kind: ErrorKind
    message: str
    exit_code: int = 1


class CopyOutcome(BaseModel):
    """Terminal record for one image."""

    image: ImageRef
    state: OutcomeState
    attempts: int = 0
    duration: float = 0.0
    source_digest: Optional[str] = None
    target_digest: Optional[str] = None
    error: Optional[ErrorInfo] = None

    @property
    def succeeded(self) -> bool:
        return self.state == OutcomeState.SUCCEEDED


class BatchResult(BaseModel):
    """Outcomes of a batch, in input order."""

    outcomes: List[CopyOutcome] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.state == OutcomeState.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.state == OutcomeState.FAILED)

    @property
    def cancelled(self) -> int:
        return sum(1 for o in self.outcomes if o.state == OutcomeState.CANCELLED)

    @property
    def exit_code(self) -> int:
        """Exit code of the first failed image in input order, 0 if all succeeded."""
        for outcome in self.outcomes:
            if outcome.state == OutcomeState.FAILED:
                return outcome.error.exit_code if outcome.error else 1
        if self.cancelled:
            return 1
        return 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "exit_code": self.exit_code,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }
