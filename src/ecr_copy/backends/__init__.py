"""Transfer backends: direct registry copy and pull/tag/push."""

from .base import TransferBackend, TransferDigests
from .direct_copy import DirectCopyBackend
from .pull_tag_push import PullTagPushBackend
from .selection import probe_host_capabilities, select_backend

__all__ = [
    "TransferBackend",
    "TransferDigests",
    "DirectCopyBackend",
    "PullTagPushBackend",
    "probe_host_capabilities",
    "select_backend",
]
