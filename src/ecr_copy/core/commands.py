"""Cancellable execution of external tools (skopeo, docker)."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .cancellation import CancelToken
from .exceptions import TransferError
from .logging_config import get_logger

_SECRET_FLAGS = ("--src-creds", "--dest-creds", "--creds", "--password")


@dataclass
class CommandResult:
    """Exit status and captured output of one command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def redact_args(args: Sequence[str]) -> List[str]:
    """Replace the value following any credential flag with '***'."""
    redacted: List[str] = []
    hide_next = False
    for arg in args:
        if hide_next:
            redacted.append("***")
            hide_next = False
            continue
        flag, sep, _ = arg.partition("=")
        if flag in _SECRET_FLAGS:
            if sep:
                redacted.append(f"{flag}=***")
            else:
                redacted.append(arg)
                hide_next = True
            continue
        redacted.append(arg)
    return redacted


class SubprocessCommandRunner:
    """Runs commands with subprocess, killing them when the token is cancelled."""

    def __init__(self, poll_interval: float = 0.2):
        self._poll_interval = poll_interval
        self._logger = get_logger("commands")

    def run(
        self,
        args: Sequence[str],
        cancel_token: Optional[CancelToken] = None,
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
    ) -> CommandResult:
        """
        Run `args` to completion and capture its output.

        Raises:
            TransferError: If the executable cannot be started.
            CopyTimeoutError / JobCancelledError: If the token is cancelled
                while the command runs; the process is killed first.
        """
        argv = list(args)
        self._logger.debug(f"Running: {' '.join(redact_args(argv))}")
        merged_env = {**os.environ, **env} if env else None

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=merged_env,
            )
        except OSError as exc:
            raise TransferError(f"Cannot execute {argv[0]}: {exc}") from exc

        pending_input = input_text
        while True:
            try:
                stdout, stderr = process.communicate(
                    input=pending_input, timeout=self._poll_interval
                )
                break
            except subprocess.TimeoutExpired:
                # communicate() must not be handed the same input twice
                pending_input = None
                if cancel_token is not None and cancel_token.cancelled:
                    self._logger.warning(f"Killing {argv[0]} (pid {process.pid}): {cancel_token.reason.value}")
                    process.kill()
                    process.communicate()
                    cancel_token.raise_if_cancelled()

        return CommandResult(argv, process.returncode, stdout or "", stderr or "")
