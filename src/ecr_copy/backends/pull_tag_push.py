"""Copy through the local container engine: pull, retag, push."""

import tempfile
import uuid
from typing import Dict, List, Optional

from ..core.cancellation import CancelToken
from ..core.credentials import RegistryCredentials
from ..core.logging_config import get_logger
from ..core.models import ImageRef
from ..core.protocols import CommandRunnerProtocol, RegistryClientProtocol
from .base import TransferBackend, TransferDigests, raise_for_result

DOCKER = "docker"
LOCAL_REPOSITORY = "ecr-copy"


class PullTagPushBackend(TransferBackend):
    """
    Pulls the source image into the local engine, tags it for the target
    registry and pushes it.

    Each copy logs in with its own temporary DOCKER_CONFIG directory, so
    concurrent copies never share registry credentials. The pulled image is
    held under a local tag unique to the copy, and afterwards only the tags
    this copy created are removed, whether or not the copy succeeded.
    """

    name = "pull-tag-push"

    def __init__(self, registry: RegistryClientProtocol, runner: CommandRunnerProtocol):
        super().__init__(registry)
        self._runner = runner
        self._logger = get_logger("backends.pull_tag_push")

    def copy(
        self,
        image: ImageRef,
        source: RegistryCredentials,
        target: RegistryCredentials,
        cancel_token: Optional[CancelToken] = None,
    ) -> TransferDigests:
        source_digest = self._source_digest(source, image)
        source_uri = source.endpoint.image_uri(image)
        target_uri = target.endpoint.image_uri(image)
        local_ref = f"{LOCAL_REPOSITORY}/{image.repository}:{uuid.uuid4().hex}"
        created_refs: List[str] = []

        with tempfile.TemporaryDirectory(prefix="ecr-copy-docker-") as docker_config:
            env = {"DOCKER_CONFIG": docker_config}
            try:
                self._login(source, env, cancel_token)
                if target.endpoint.url != source.endpoint.url:
                    self._login(target, env, cancel_token)

                # Tags the user already had locally are left in place
                present = {
                    ref for ref in (source_uri, target_uri) if self._is_present(ref, env, cancel_token)
                }

                result = self._runner.run([DOCKER, "pull", source_uri], cancel_token, env)
                raise_for_result(result, f"docker pull {source_uri}")
                if source_uri not in present:
                    created_refs.append(source_uri)

                result = self._runner.run([DOCKER, "tag", source_uri, local_ref], cancel_token, env)
                raise_for_result(result, f"docker tag {local_ref}")
                created_refs.append(local_ref)

                result = self._runner.run([DOCKER, "tag", local_ref, target_uri], cancel_token, env)
                raise_for_result(result, f"docker tag {target_uri}")
                if target_uri not in present:
                    created_refs.append(target_uri)

                result = self._runner.run([DOCKER, "push", target_uri], cancel_token, env)
                raise_for_result(result, f"docker push {target_uri}")
            finally:
                self._cleanup(created_refs, env)

        return TransferDigests(source_digest, self._target_digest(target, image))

    def _is_present(self, ref: str, env: Dict[str, str], cancel_token: Optional[CancelToken]) -> bool:
        result = self._runner.run([DOCKER, "image", "inspect", "--format", "{{.Id}}", ref], cancel_token, env)
        return result.ok

    def _login(
        self,
        credentials: RegistryCredentials,
        env: Dict[str, str],
        cancel_token: Optional[CancelToken],
    ) -> None:
        username, password = credentials.token.basic_credentials()
        result = self._runner.run(
            [DOCKER, "login", "--username", username, "--password-stdin", credentials.endpoint.url],
            cancel_token,
            env,
            input_text=password,
        )
        raise_for_result(result, f"docker login {credentials.endpoint.url}")

    def _cleanup(self, local_refs: List[str], env: Dict[str, str]) -> None:
        # Runs without the cancel token so a cancelled copy still frees disk
        for ref in reversed(local_refs):
            try:
                result = self._runner.run([DOCKER, "rmi", ref], None, env)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(f"Cleanup of local image {ref} failed: {exc}")
                continue
            if not result.ok:
                self._logger.warning(f"Cleanup of local image {ref} failed: {result.stderr.strip()}")
