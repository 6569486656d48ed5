"""Credential resolution and registry token caching."""

from __future__ import annotations

import os
import re
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import boto3

from .cancellation import CancelToken
from .error_handling import with_error_handling
from .exceptions import AuthError
from .logging_config import get_logger
from .models import (
    AssumeRoleAuth,
    AuthSpec,
    CachedToken,
    EnvironmentAuth,
    ProfileAuth,
    RegistryEndpoint,
)
from .protocols import EcrClientProtocol, SessionFactoryProtocol, SessionProtocol, StsClientProtocol

ROLE_ARN_PATTERN = re.compile(r"^arn:aws[a-zA-Z-]*:iam::(\d{12}):role/[\w+=,.@/-]+$")
MIN_ROLE_DURATION_SECONDS = 900
MAX_ROLE_DURATION_SECONDS = 43200
DEFAULT_ROLE_SESSION_NAME = "ecr-copy"

ENV_ACCESS_KEY_ID = "AWS_ACCESS_KEY_ID"
ENV_SECRET_ACCESS_KEY = "AWS_SECRET_ACCESS_KEY"
ENV_SESSION_TOKEN = "AWS_SESSION_TOKEN"
ENV_PROFILE = "AWS_PROFILE"
ENV_ROLE_ARN = "AWS_ROLE_ARN"
ENV_ROLE_SESSION_NAME = "AWS_ROLE_SESSION_NAME"

ResolutionKey = Tuple[AuthSpec, str, Optional[str]]


@dataclass(frozen=True)
class RegistryCredentials:
    """A resolved endpoint, its token and an ECR client bound to the same identity."""

    endpoint: RegistryEndpoint
    token: CachedToken
    ecr_client: Any = field(default=None, repr=False, compare=False)
    # Expiry of temporary AWS credentials behind ecr_client, when there are any
    expires_at: Optional[datetime] = field(default=None, compare=False)

    def is_expired(self, now: datetime, safety_margin: timedelta) -> bool:
        if self.token.is_expired(now, safety_margin):
            return True
        return self.expires_at is not None and now >= self.expires_at - safety_margin


def account_id_from_role_arn(arn: str) -> str:
    """Return the account ID embedded in a role ARN, or raise a non-retryable AuthError."""
    match = ROLE_ARN_PATTERN.match(arn)
    if not match:
        raise AuthError(f"Invalid role ARN: {arn!r}", retryable=False)
    return match.group(1)


def clamp_role_duration(duration_seconds: int) -> int:
    return max(MIN_ROLE_DURATION_SECONDS, min(duration_seconds, MAX_ROLE_DURATION_SECONDS))


class CredentialResolver:
    """
    Turns an AuthSpec plus region into registry credentials.

    Results are cached until the registry token or the temporary AWS
    credentials behind it come within `safety_margin` of expiry. Concurrent requests for the same key wait for the resolution
    already in flight instead of calling AWS again.
    """

    def __init__(
        self,
        session_factory: SessionFactoryProtocol = boto3.Session,
        environ: Optional[Mapping[str, str]] = None,
        safety_margin: timedelta = timedelta(seconds=300),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        wait_interval: float = 0.2,
    ):
        self._session_factory = session_factory
        self._environ = environ if environ is not None else os.environ
        self._safety_margin = safety_margin
        self._clock = clock
        self._wait_interval = wait_interval
        self._lock = threading.Lock()
        self._resolved: Dict[ResolutionKey, RegistryCredentials] = {}
        self._tokens: Dict[RegistryEndpoint, CachedToken] = {}
        self._in_flight: Dict[ResolutionKey, Future] = {}
        self._logger = get_logger("credentials")

    def cached_token(self, endpoint: RegistryEndpoint) -> Optional[CachedToken]:
        with self._lock:
            return self._tokens.get(endpoint)

    def resolve(
        self,
        auth_spec: AuthSpec,
        region: str,
        registry_url: Optional[str] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> RegistryCredentials:
        """
        Resolve credentials for `auth_spec` in `region`.

        Raises:
            AuthError: If credentials are absent or invalid, the role cannot
                be assumed, or the account lookup fails.
        """
        key: ResolutionKey = (auth_spec, region, registry_url)
        with self._lock:
            cached = self._resolved.get(key)
            if cached is not None and not cached.is_expired(self._clock(), self._safety_margin):
                return cached
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            self._logger.debug(f"Waiting for in-flight resolution of {auth_spec.kind} credentials ({region})")
            return self._wait_for(future, cancel_token)

        try:
            credentials = self._resolve_uncached(auth_spec, region, registry_url)
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            self._resolved[key] = credentials
            self._tokens[credentials.endpoint] = credentials.token
            self._in_flight.pop(key, None)
        future.set_result(credentials)
        return credentials

    def invalidate(self, auth_spec: AuthSpec, region: str, registry_url: Optional[str] = None) -> None:
        """Forget cached credentials so the next resolve fetches fresh ones."""
        with self._lock:
            credentials = self._resolved.pop((auth_spec, region, registry_url), None)
            if credentials is not None:
                self._tokens.pop(credentials.endpoint, None)

    def _wait_for(self, future: Future, cancel_token: Optional[CancelToken]) -> RegistryCredentials:
        while True:
            try:
                return future.result(timeout=self._wait_interval)
            except FutureTimeoutError:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()

    def _resolve_uncached(
        self, auth_spec: AuthSpec, region: str, registry_url: Optional[str]
    ) -> RegistryCredentials:
        expires_at: Optional[datetime] = None
        if isinstance(auth_spec, ProfileAuth):
            session = self._open_session(profile_name=auth_spec.name, region_name=region)
            account_id = self._lookup_account(session)
        elif isinstance(auth_spec, AssumeRoleAuth):
            account_id = account_id_from_role_arn(auth_spec.arn)
            base = self._open_session(region_name=region)
            session, expires_at = self._assume_role(
                base, auth_spec.arn, auth_spec.session_name, auth_spec.duration_seconds, region
            )
        elif isinstance(auth_spec, EnvironmentAuth):
            session, account_id, expires_at = self._session_from_environment(region)
        else:
            raise AuthError(f"Unsupported auth specification: {auth_spec!r}", retryable=False)

        if registry_url:
            endpoint = RegistryEndpoint(url=registry_url, region=region)
        else:
            endpoint = RegistryEndpoint.for_account(account_id, region)

        ecr_client = session.client("ecr", region_name=region)
        token = self._fetch_token(ecr_client, endpoint)
        self._logger.info(
            f"Resolved {auth_spec.kind} credentials for {endpoint.url} "
            f"(token expires {token.expires_at.isoformat()})"
        )
        return RegistryCredentials(
            endpoint=endpoint, token=token, ecr_client=ecr_client, expires_at=expires_at
        )

    def _session_from_environment(self, region: str) -> Tuple[SessionProtocol, str, Optional[datetime]]:
        env = self._environ
        access_key = env.get(ENV_ACCESS_KEY_ID)
        secret_key = env.get(ENV_SECRET_ACCESS_KEY)
        profile = env.get(ENV_PROFILE)
        role_arn = env.get(ENV_ROLE_ARN)

        if access_key and secret_key:
            base = self._open_session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                aws_session_token=env.get(ENV_SESSION_TOKEN) or None,
                region_name=region,
            )
        elif profile:
            base = self._open_session(profile_name=profile, region_name=region)
        elif role_arn:
            base = self._open_session(region_name=region)
        else:
            raise AuthError(
                "No credentials in environment: set "
                f"{ENV_ACCESS_KEY_ID}/{ENV_SECRET_ACCESS_KEY}, {ENV_PROFILE} or {ENV_ROLE_ARN}",
                retryable=False,
            )

        if role_arn:
            account_id = account_id_from_role_arn(role_arn)
            session_name = env.get(ENV_ROLE_SESSION_NAME) or DEFAULT_ROLE_SESSION_NAME
            session, expires_at = self._assume_role(base, role_arn, session_name, 3600, region)
            return session, account_id, expires_at
        return base, self._lookup_account(base), None

    @with_error_handling
    def _open_session(self, **kwargs: Any) -> SessionProtocol:
        return self._session_factory(**kwargs)

    @with_error_handling
    def _lookup_account(self, session: SessionProtocol) -> str:
        sts: StsClientProtocol = session.client("sts")
        identity = sts.get_caller_identity()
        account_id = identity.get("Account")
        if not account_id:
            raise AuthError("Identity lookup returned no account ID", retryable=False)
        return account_id

    @with_error_handling
    def _assume_role(
        self,
        base: SessionProtocol,
        arn: str,
        session_name: str,
        duration_seconds: int,
        region: str,
    ) -> Tuple[SessionProtocol, Optional[datetime]]:
        duration = clamp_role_duration(duration_seconds)
        self._logger.debug(f"Assuming role {arn} as {session_name!r} for {duration}s")
        sts: StsClientProtocol = base.client("sts")
        response = sts.assume_role(
            RoleArn=arn, RoleSessionName=session_name, DurationSeconds=duration
        )
        creds = response["Credentials"]
        session = self._session_factory(
            aws_access_key_id=creds["AccessKeyId"],
            aws_secret_access_key=creds["SecretAccessKey"],
            aws_session_token=creds["SessionToken"],
            region_name=region,
        )
        return session, creds.get("Expiration")

    @with_error_handling
    def _fetch_token(self, ecr_client: EcrClientProtocol, endpoint: RegistryEndpoint) -> CachedToken:
        response = ecr_client.get_authorization_token()
        data = response.get("authorizationData") or []
        if not data:
            raise AuthError(f"No authorization data returned for {endpoint.url}")
        return CachedToken(
            endpoint=endpoint,
            token=data[0]["authorizationToken"],
            expires_at=data[0]["expiresAt"],
        )
