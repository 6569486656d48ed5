"""Transfer backend interface shared by every copy strategy."""

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from ..core.cancellation import CancelToken
from ..core.commands import CommandResult
from ..core.credentials import RegistryCredentials
from ..core.exceptions import TransferError
from ..core.models import ImageRef
from ..core.protocols import RegistryClientProtocol


class TransferDigests(NamedTuple):
    """Manifest digests reported by the source and target registries."""

    source_digest: Optional[str]
    target_digest: Optional[str]


class TransferBackend(ABC):
    """Moves one image between two registries."""

    name: str = "transfer"

    def __init__(self, registry: RegistryClientProtocol):
        self._registry = registry

    @abstractmethod
    def copy(
        self,
        image: ImageRef,
        source: RegistryCredentials,
        target: RegistryCredentials,
        cancel_token: Optional[CancelToken] = None,
    ) -> TransferDigests:
        """
        Copy `image` from the source endpoint to the same repository and tag
        on the target endpoint.

        Raises:
            TransferError: If the copy fails.
        """
        ...

    def _source_digest(self, source: RegistryCredentials, image: ImageRef) -> Optional[str]:
        return self._registry.get_digest(source, image)

    def _target_digest(self, target: RegistryCredentials, image: ImageRef) -> Optional[str]:
        # Always read back from the target registry, never from local state
        return self._registry.get_digest(target, image)


def raise_for_result(result: CommandResult, action: str) -> None:
    """Raise a TransferError carrying the tail of stderr when a command failed."""
    if result.ok:
        return
    detail = (result.stderr or result.stdout).strip().splitlines()
    tail = detail[-1] if detail else "no output"
    raise TransferError(f"{action} failed (exit {result.returncode}): {tail}")
