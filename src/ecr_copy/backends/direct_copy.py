"""Registry-to-registry copy with skopeo, no local image storage."""

from typing import Optional

from ..core.cancellation import CancelToken
from ..core.credentials import RegistryCredentials
from ..core.logging_config import get_logger
from ..core.models import ImageRef
from ..core.protocols import CommandRunnerProtocol, RegistryClientProtocol
from .base import TransferBackend, TransferDigests, raise_for_result

SKOPEO = "skopeo"


class DirectCopyBackend(TransferBackend):
    """
    Streams the image straight from source to target with `skopeo copy`.

    Every platform of a multi-arch image is copied and manifests are not
    rewritten, so the target digest matches the source digest.
    """

    name = "direct-copy"

    def __init__(self, registry: RegistryClientProtocol, runner: CommandRunnerProtocol):
        super().__init__(registry)
        self._runner = runner
        self._logger = get_logger("backends.direct_copy")

    def copy(
        self,
        image: ImageRef,
        source: RegistryCredentials,
        target: RegistryCredentials,
        cancel_token: Optional[CancelToken] = None,
    ) -> TransferDigests:
        source_digest = self._source_digest(source, image)

        src_user, src_password = source.token.basic_credentials()
        dest_user, dest_password = target.token.basic_credentials()
        source_uri = source.endpoint.image_uri(image)
        target_uri = target.endpoint.image_uri(image)

        self._logger.debug(f"skopeo copy {source_uri} -> {target_uri}")
        result = self._runner.run(
            [
                SKOPEO,
                "copy",
                "--all",
                "--preserve-digests",
                "--src-creds",
                f"{src_user}:{src_password}",
                "--dest-creds",
                f"{dest_user}:{dest_password}",
                f"docker://{source_uri}",
                f"docker://{target_uri}",
            ],
            cancel_token=cancel_token,
        )
        raise_for_result(result, f"skopeo copy of {image}")

        return TransferDigests(source_digest, self._target_digest(target, image))
