"""Host probing and once-per-run backend selection."""

import shutil
from typing import Callable, Optional

from ..core.exceptions import EnvironmentCheckError
from ..core.logging_config import get_logger
from ..core.models import HostCapabilities
from ..core.protocols import CommandRunnerProtocol, RegistryClientProtocol
from .base import TransferBackend
from .direct_copy import SKOPEO, DirectCopyBackend
from .pull_tag_push import DOCKER, PullTagPushBackend


def probe_host_capabilities(
    runner: CommandRunnerProtocol,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> HostCapabilities:
    """Detect skopeo and a reachable docker daemon."""
    logger = get_logger("backends.selection")
    direct_copy_tool = which(SKOPEO) is not None

    engine_daemon = False
    if which(DOCKER) is not None:
        try:
            engine_daemon = runner.run([DOCKER, "info", "--format", "{{.ServerVersion}}"]).ok
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"docker info failed: {exc}")

    capabilities = HostCapabilities(direct_copy_tool=direct_copy_tool, engine_daemon=engine_daemon)
    logger.debug(f"Host capabilities: {capabilities}")
    return capabilities


def select_backend(
    capabilities: HostCapabilities,
    registry: RegistryClientProtocol,
    runner: CommandRunnerProtocol,
    force_pull_tag_push: bool = False,
) -> TransferBackend:
    """
    Pick the transfer backend for the whole run.

    Raises:
        EnvironmentCheckError: If no backend is usable on this host.
    """
    logger = get_logger("backends.selection")
    if capabilities.direct_copy_tool and not force_pull_tag_push:
        logger.info("Using direct registry-to-registry copy (skopeo)")
        return DirectCopyBackend(registry, runner)

    if capabilities.engine_daemon:
        logger.info("Using pull/tag/push through the local docker daemon")
        return PullTagPushBackend(registry, runner)

    if force_pull_tag_push:
        raise EnvironmentCheckError("Pull/tag/push was forced but no docker daemon is reachable")
    raise EnvironmentCheckError(
        "No usable transfer backend: install skopeo or start a docker daemon"
    )
