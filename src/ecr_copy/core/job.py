"""Per-image copy state machine."""

from __future__ import annotations

import time
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from ..backends.base import TransferBackend
from .cancellation import CancelToken
from .credentials import CredentialResolver, RegistryCredentials
from .exceptions import AuthError, CopyError, JobCancelledError, batch_error_handler
from .models import AuthSpec, CopyOutcome, CopyState, ImageRef, OutcomeState, RegistryEndpoint
from .observability import LogContext, MetricsCollector, timed_operation
from .protocols import LoggerProtocol, RegistryClientProtocol
from .verifier import Verifier

_TRANSITIONS: Dict[CopyState, FrozenSet[CopyState]] = {
    CopyState.PENDING: frozenset({CopyState.AUTHENTICATING, CopyState.CANCELLED}),
    CopyState.AUTHENTICATING: frozenset({CopyState.VALIDATING, CopyState.FAILED}),
    CopyState.VALIDATING: frozenset({CopyState.TRANSFERRING, CopyState.FAILED}),
    CopyState.TRANSFERRING: frozenset({CopyState.VERIFYING, CopyState.SUCCEEDED, CopyState.FAILED}),
    CopyState.VERIFYING: frozenset({CopyState.SUCCEEDED, CopyState.FAILED}),
    # FAILED is re-entered into PENDING by the scheduler while retries remain
    CopyState.FAILED: frozenset({CopyState.PENDING, CopyState.CANCELLED}),
    CopyState.SUCCEEDED: frozenset(),
    CopyState.CANCELLED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a job is driven into a state its current state cannot reach."""


@dataclass
class JobDependencies:
    """Collaborators shared by every job of a run."""

    resolver: CredentialResolver
    registry: RegistryClientProtocol
    backend: TransferBackend
    source_auth: AuthSpec
    target_auth: AuthSpec
    source_region: str
    target_region: str
    logger: LoggerProtocol
    verifier: Optional[Verifier] = None
    source_registry_url: Optional[str] = None
    target_registry_url: Optional[str] = None
    metrics: Optional[MetricsCollector] = None
    auth_executor: Optional[Executor] = None


class CopyJob:
    """
    Tracks one image through authenticate, validate, transfer and verify.

    Every attempt starts from PENDING and runs the whole sequence again.
    Errors move the job to FAILED with `last_error` set. Only the scheduler
    decides whether a failed job is re-queued, finalized or cancelled.
    """

    def __init__(self, image: ImageRef, index: int, deps: JobDependencies):
        self.image = image
        self.index = index
        self.state = CopyState.PENDING
        self.attempt = 0
        self.last_error: Optional[CopyError] = None
        self.source_endpoint: Optional[RegistryEndpoint] = None
        self.target_endpoint: Optional[RegistryEndpoint] = None
        self.source_digest: Optional[str] = None
        self.target_digest: Optional[str] = None
        self._deps = deps
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None

    def __repr__(self) -> str:
        return f"CopyJob({self.image}, state={self.state.value}, attempt={self.attempt})"

    @property
    def is_terminal(self) -> bool:
        if self.state == CopyState.FAILED:
            return self._finished_at is not None
        return self.state.is_terminal

    def transition(self, new_state: CopyState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"{self.image}: cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    def run_attempt(self, cancel_token: Optional[CancelToken] = None) -> bool:
        """
        Run one full attempt. Returns True when the job SUCCEEDED, False when
        it ended in FAILED (see `last_error`).
        """
        token = cancel_token or CancelToken()
        self.transition(CopyState.AUTHENTICATING)
        self.attempt += 1
        if self._started_at is None:
            self._started_at = time.monotonic()
        self.last_error = None
        self.source_digest = None
        self.target_digest = None

        deps = self._deps
        context = LogContext(
            correlation_id=f"{self.image}#{self.attempt}", component="copy_job"
        )
        deps.logger.debug("Attempt started", context)

        try:
            with batch_error_handler():
                token.raise_if_cancelled()
                with timed_operation("authenticate", deps.logger, deps.metrics, context):
                    source, target = self._authenticate(token)

                token.raise_if_cancelled()
                self.transition(CopyState.VALIDATING)
                with timed_operation("validate", deps.logger, deps.metrics, context):
                    deps.registry.ensure_source_image(source, self.image)
                    deps.registry.ensure_target_repository(target, self.image.repository)

                token.raise_if_cancelled()
                self.transition(CopyState.TRANSFERRING)
                with timed_operation("transfer", deps.logger, deps.metrics, context):
                    digests = deps.backend.copy(self.image, source, target, token)

                token.raise_if_cancelled()
                if deps.verifier is None:
                    self.transition(CopyState.SUCCEEDED)
                else:
                    self.transition(CopyState.VERIFYING)
                    self.source_digest, self.target_digest = digests
                    with timed_operation("verify", deps.logger, deps.metrics, context):
                        deps.verifier.verify(*digests)
                    self.transition(CopyState.SUCCEEDED)
        except CopyError as exc:
            self.last_error = exc
            self.transition(CopyState.FAILED)
            if isinstance(exc, AuthError):
                self._forget_credentials()
            log = deps.logger.info if isinstance(exc, JobCancelledError) else deps.logger.warning
            log(
                f"Attempt failed: {exc}",
                context,
                kind=exc.kind.value,
                retryable=exc.retryable,
            )
            return False

        deps.logger.info(
            f"Copied to {self.target_endpoint.image_uri(self.image)}",
            context,
            digest=self.target_digest or "unverified",
        )
        return True

    def _authenticate(self, token: CancelToken) -> Tuple[RegistryCredentials, RegistryCredentials]:
        deps = self._deps
        source_future = None
        if deps.auth_executor is not None:
            source_future = deps.auth_executor.submit(
                deps.resolver.resolve,
                deps.source_auth,
                deps.source_region,
                deps.source_registry_url,
                token,
            )
        else:
            source = deps.resolver.resolve(
                deps.source_auth, deps.source_region, deps.source_registry_url, token
            )
        target = deps.resolver.resolve(
            deps.target_auth, deps.target_region, deps.target_registry_url, token
        )
        if source_future is not None:
            source = source_future.result()

        self.source_endpoint = source.endpoint
        self.target_endpoint = target.endpoint
        return source, target

    def _forget_credentials(self) -> None:
        deps = self._deps
        deps.resolver.invalidate(deps.source_auth, deps.source_region, deps.source_registry_url)
        deps.resolver.invalidate(deps.target_auth, deps.target_region, deps.target_registry_url)

    def requeue(self) -> None:
        """Return a failed job to PENDING for another attempt."""
        self.transition(CopyState.PENDING)

    def finalize_failed(self) -> None:
        if self.state != CopyState.FAILED:
            raise InvalidTransitionError(f"{self.image}: only a failed job can be finalized as failed")
        self._mark_finished()

    def cancel(self) -> None:
        """Mark a queued job, or one whose attempt was interrupted, as CANCELLED."""
        self.transition(CopyState.CANCELLED)
        self._mark_finished()

    def mark_finished(self) -> None:
        self._mark_finished()

    def _mark_finished(self) -> None:
        if self._finished_at is None:
            self._finished_at = time.monotonic()

    def to_outcome(self) -> CopyOutcome:
        """Build the terminal record. Only valid once the job is terminal."""
        if not self.is_terminal:
            raise InvalidTransitionError(f"{self.image}: job is still {self.state.value}")

        duration = 0.0
        if self._started_at is not None and self._finished_at is not None:
            duration = self._finished_at - self._started_at

        error = None
        if self.state == CopyState.SUCCEEDED:
            state = OutcomeState.SUCCEEDED
        elif self.state == CopyState.CANCELLED:
            state = OutcomeState.CANCELLED
            error = JobCancelledError("Cancelled after another image failed").to_error_info()
        else:
            state = OutcomeState.FAILED
            if self.last_error is not None:
                error = self.last_error.to_error_info()

        return CopyOutcome(
            image=self.image,
            state=state,
            attempts=self.attempt,
            duration=round(duration, 3),
            source_digest=self.source_digest,
            target_digest=self.target_digest,
            error=error,
        )
