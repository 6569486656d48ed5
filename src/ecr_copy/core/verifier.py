"""Digest comparison after a transfer."""

from typing import Optional

from .exceptions import DigestMismatchError, DigestMissingError


def verify(source_digest: Optional[str], target_digest: Optional[str]) -> None:
    """
    Confirm the target registry holds the same manifest as the source.

    Raises:
        DigestMissingError: If either digest is absent.
        DigestMismatchError: If the digests differ.
    """
    if not source_digest or not target_digest:
        missing = "source" if not source_digest else "target"
        raise DigestMissingError(f"Cannot verify copy: {missing} digest unavailable")
    if source_digest != target_digest:
        raise DigestMismatchError(
            f"Digest mismatch: source {source_digest} != target {target_digest}"
        )


class Verifier:
    """Wraps `verify` with the run's digest-mismatch retry policy."""

    def __init__(self, retry_on_mismatch: bool = True):
        self._retry_on_mismatch = retry_on_mismatch

    def verify(self, source_digest: Optional[str], target_digest: Optional[str]) -> None:
        try:
            verify(source_digest, target_digest)
        except DigestMismatchError as exc:
            exc.retryable = self._retry_on_mismatch
            raise
