"""Run orchestration: pre-flight checks, job construction and scheduling."""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..backends import TransferBackend, select_backend
from .credentials import CredentialResolver
from .exceptions import ConfigurationError
from .image_utils import parse_image_refs
from .job import CopyJob, JobDependencies
from .models import AuthSpec, BatchResult, HostCapabilities, ImageRef, RunConfig, RunSpec
from .observability import LogContext, MetricsCollector
from .protocols import CommandRunnerProtocol, LoggerProtocol, RegistryClientProtocol
from .scheduler import Scheduler
from .verifier import Verifier


def create_run_spec(
    images: Sequence[Union[str, Mapping[str, Any], ImageRef]],
    source_auth: AuthSpec,
    target_auth: AuthSpec,
    source_region: str,
    target_region: str,
    options: Optional[Union[RunConfig, Mapping[str, Any]]] = None,
    source_registry_url: Optional[str] = None,
    target_registry_url: Optional[str] = None,
) -> RunSpec:
    """
    Validate raw run inputs into a RunSpec.

    Raises:
        ConfigurationError: On a malformed image reference or invalid option.
    """
    refs = parse_image_refs(images)
    try:
        config = options if isinstance(options, RunConfig) else RunConfig(**(options or {}))
        return RunSpec(
            images=refs,
            source_auth=source_auth,
            target_auth=target_auth,
            source_region=source_region,
            target_region=target_region,
            source_registry_url=source_registry_url,
            target_registry_url=target_registry_url,
            config=config,
        )
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid run options: {reasons}") from exc


class CopyJobFactory:
    """Factory for creating one job per input image."""

    @staticmethod
    def create_jobs(images: List[ImageRef], deps: JobDependencies) -> List[CopyJob]:
        return [CopyJob(image, index, deps) for index, image in enumerate(images)]


class CopyOrchestrator:
    """Main orchestrator: selects a backend once, then schedules every image."""

    def __init__(
        self,
        registry_factory: Callable[[RunConfig], RegistryClientProtocol],
        runner: CommandRunnerProtocol,
        capability_probe: Callable[[], HostCapabilities],
        logger: LoggerProtocol,
        resolver_factory: Callable[[timedelta], CredentialResolver] = lambda margin: CredentialResolver(
            safety_margin=margin
        ),
        backend_selector: Callable[..., TransferBackend] = select_backend,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._registry_factory = registry_factory
        self._runner = runner
        self._capability_probe = capability_probe
        self._logger = logger
        self._resolver_factory = resolver_factory
        self._backend_selector = backend_selector
        self._metrics_collector = metrics_collector

    def preflight(self, spec: RunSpec, registry: RegistryClientProtocol) -> TransferBackend:
        """
        Choose the transfer backend for the run.

        Raises:
            EnvironmentCheckError: If no backend is usable on this host.
        """
        capabilities = self._capability_probe()
        return self._backend_selector(
            capabilities,
            registry,
            self._runner,
            force_pull_tag_push=spec.config.force_pull_tag_push,
        )

    def run(self, spec: RunSpec) -> BatchResult:
        """
        Copy every image of `spec`. Per-image failures are reported in the
        result; only configuration and environment errors are raised.
        """
        config = spec.config
        context = LogContext(component="orchestrator").with_metadata(
            images=len(spec.images), concurrency=config.concurrency
        )

        if not spec.images:
            self._logger.info("No images to copy", context)
            return BatchResult()

        registry = self._registry_factory(config)
        backend = self.preflight(spec, registry)
        resolver = self._resolver_factory(timedelta(seconds=config.token_safety_margin_seconds))

        start_time = time.time()
        with ThreadPoolExecutor(
            max_workers=config.concurrency, thread_name_prefix="auth"
        ) as auth_executor:
            deps = JobDependencies(
                resolver=resolver,
                registry=registry,
                backend=backend,
                source_auth=spec.source_auth,
                target_auth=spec.target_auth,
                source_region=spec.source_region,
                target_region=spec.target_region,
                source_registry_url=spec.source_registry_url,
                target_registry_url=spec.target_registry_url,
                verifier=Verifier(config.retry_on_digest_mismatch) if config.verify else None,
                logger=self._logger,
                metrics=self._metrics_collector,
                auth_executor=auth_executor,
            )
            jobs = CopyJobFactory.create_jobs(spec.images, deps)
            self._logger.info(f"Copying with {backend.name}", context)
            result = Scheduler.from_config(config).run(jobs)

        self._logger.info(
            "Run complete",
            context,
            succeeded=result.succeeded,
            failed=result.failed,
            cancelled=result.cancelled,
            elapsed_s=round(time.time() - start_time, 1),
        )
        return result

    def stage_summary(self) -> Dict[str, Any]:
        """Per-stage timing statistics gathered during the run."""
        if self._metrics_collector is None:
            return {}
        return {
            stage: self._metrics_collector.get_summary(stage)
            for stage in ("authenticate", "validate", "transfer", "verify")
        }
