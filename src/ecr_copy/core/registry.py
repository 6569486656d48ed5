"""ECR existence checks and digest lookups."""

from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from .credentials import RegistryCredentials
from .error_handling import NETWORK_ERRORS, client_error_code, translate_client_error
from .exceptions import NetworkError, SourceImageNotFoundError, TargetRepositoryError
from .logging_config import get_logger
from .models import ImageRef

_NOT_FOUND_CODES = ("ImageNotFoundException", "RepositoryNotFoundException")


class EcrRegistryClient:
    """Registry queries issued with the ECR client of the resolved identity."""

    def __init__(self, create_missing_repositories: bool = True):
        self._create_missing_repositories = create_missing_repositories
        self._logger = get_logger("registry")

    def ensure_source_image(self, credentials: RegistryCredentials, image: ImageRef) -> None:
        """
        Confirm the source image exists.

        Raises:
            SourceImageNotFoundError: If the repository or tag is missing or
                the registry cannot be queried.
            AuthError / AccessDeniedError: On throttling or permission errors.
            NetworkError: If the registry endpoint cannot be reached.
        """
        try:
            response = credentials.ecr_client.describe_images(
                repositoryName=image.repository, imageIds=[{"imageTag": image.tag}]
            )
        except ClientError as exc:
            if client_error_code(exc) in _NOT_FOUND_CODES:
                raise SourceImageNotFoundError(
                    f"Source image {credentials.endpoint.image_uri(image)} not found"
                ) from exc
            raise translate_client_error(exc, "describe_images", SourceImageNotFoundError) from exc
        except NETWORK_ERRORS as exc:
            raise NetworkError(f"Cannot reach source registry: {exc}") from exc
        except BotoCoreError as exc:
            raise SourceImageNotFoundError(f"Cannot query source registry: {exc}") from exc

        if not response.get("imageDetails"):
            raise SourceImageNotFoundError(
                f"Source image {credentials.endpoint.image_uri(image)} not found"
            )

    def ensure_target_repository(self, credentials: RegistryCredentials, repository: str) -> None:
        """
        Confirm the target repository exists, creating it when allowed.

        Raises:
            TargetRepositoryError: If it is missing and cannot be created.
            NetworkError: If the registry endpoint cannot be reached.
        """
        ecr = credentials.ecr_client
        try:
            ecr.describe_repositories(repositoryNames=[repository])
            return
        except ClientError as exc:
            if client_error_code(exc) != "RepositoryNotFoundException":
                raise translate_client_error(
                    exc, "describe_repositories", TargetRepositoryError
                ) from exc
        except NETWORK_ERRORS as exc:
            raise NetworkError(f"Cannot reach target registry: {exc}") from exc
        except BotoCoreError as exc:
            raise TargetRepositoryError(f"Cannot reach target registry: {exc}") from exc

        if not self._create_missing_repositories:
            raise TargetRepositoryError(
                f"Target repository {credentials.endpoint.url}/{repository} does not exist"
            )

        self._logger.info(f"Creating target repository {credentials.endpoint.url}/{repository}")
        try:
            ecr.create_repository(repositoryName=repository)
        except ClientError as exc:
            # Another job may have created it in the meantime
            if client_error_code(exc) == "RepositoryAlreadyExistsException":
                return
            raise translate_client_error(exc, "create_repository", TargetRepositoryError) from exc
        except NETWORK_ERRORS as exc:
            raise NetworkError(f"Cannot reach target registry: {exc}") from exc
        except BotoCoreError as exc:
            raise TargetRepositoryError(f"Cannot create target repository: {exc}") from exc

    def get_digest(self, credentials: RegistryCredentials, image: ImageRef) -> Optional[str]:
        """Return the manifest digest the registry reports, or None if it cannot be read."""
        try:
            response = credentials.ecr_client.describe_images(
                repositoryName=image.repository, imageIds=[{"imageTag": image.tag}]
            )
        except (ClientError, BotoCoreError) as exc:
            self._logger.warning(
                f"Digest lookup failed for {credentials.endpoint.image_uri(image)}: {exc}"
            )
            return None

        details = response.get("imageDetails") or []
        if not details:
            return None
        return details[0].get("imageDigest")
