"""Factory classes for creating configured service instances."""

from datetime import timedelta
from typing import Any, Callable, Optional

import boto3

from ..backends import probe_host_capabilities
from .commands import SubprocessCommandRunner
from .credentials import CredentialResolver
from .models import HostCapabilities, RunConfig
from .observability import (
    ObservabilityConfig,
    create_logger,
    create_metrics_collector,
)
from .protocols import CommandRunnerProtocol, RegistryClientProtocol, SessionFactoryProtocol
from .registry import EcrRegistryClient
from .services import CopyOrchestrator


class ResolverFactory:
    """Factory for credential resolvers sharing one session factory."""

    def __init__(self, session_factory: SessionFactoryProtocol = boto3.Session):
        self._session_factory = session_factory

    def __call__(self, safety_margin: timedelta) -> CredentialResolver:
        return CredentialResolver(session_factory=self._session_factory, safety_margin=safety_margin)


def create_registry_client(config: RunConfig) -> RegistryClientProtocol:
    return EcrRegistryClient(create_missing_repositories=config.create_target_repository)


class CopyPipelineFactory:
    """Factory for creating the complete copy pipeline."""

    @staticmethod
    def create_pipeline(
        runner: Optional[CommandRunnerProtocol] = None,
        logger: Optional[Any] = None,
        capability_probe: Optional[Callable[[], HostCapabilities]] = None,
        session_factory: SessionFactoryProtocol = boto3.Session,
        registry_factory: Callable[[RunConfig], RegistryClientProtocol] = create_registry_client,
        observability: Optional[ObservabilityConfig] = None,
    ) -> CopyOrchestrator:
        """Create a fully configured orchestrator, defaulting to real AWS and subprocess I/O."""
        observability = observability or ObservabilityConfig()

        if runner is None:
            runner = SubprocessCommandRunner()

        if logger is None:
            logger = create_logger("copy", observability)

        if capability_probe is None:
            probe_runner = runner
            capability_probe = lambda: probe_host_capabilities(probe_runner)  # noqa: E731

        return CopyOrchestrator(
            registry_factory=registry_factory,
            runner=runner,
            capability_probe=capability_probe,
            logger=logger,
            resolver_factory=ResolverFactory(session_factory),
            metrics_collector=create_metrics_collector(observability),
        )
