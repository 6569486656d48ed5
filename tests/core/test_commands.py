"""Tests for the subprocess command runner."""

import sys
import time

import pytest

from ecr_copy.core.cancellation import CancelReason, CancelToken
from ecr_copy.core.commands import SubprocessCommandRunner, redact_args
from ecr_copy.core.exceptions import CopyTimeoutError, JobCancelledError, TransferError


class TestRedactArgs:
    """Tests for redact_args."""

    def test_hides_values_after_credential_flags(self):
        """Test separate-value credential flags are masked."""
        args = ["skopeo", "copy", "--src-creds", "AWS:pw1", "--dest-creds", "AWS:pw2", "docker://a", "docker://b"]
        assert redact_args(args) == [
            "skopeo", "copy", "--src-creds", "***", "--dest-creds", "***", "docker://a", "docker://b"
        ]

    def test_hides_inline_values(self):
        """Test flag=value forms are masked."""
        assert redact_args(["docker", "login", "--password=pw"]) == ["docker", "login", "--password=***"]


class TestSubprocessCommandRunner:
    """Tests for SubprocessCommandRunner."""

    def test_captures_output_and_exit_code(self):
        """Test stdout, stderr and the return code are captured."""
        runner = SubprocessCommandRunner(poll_interval=0.05)
        result = runner.run(
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"]
        )
        assert result.returncode == 3
        assert not result.ok
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    def test_passes_input_and_env(self):
        """Test stdin text and extra environment reach the child."""
        runner = SubprocessCommandRunner(poll_interval=0.05)
        result = runner.run(
            [sys.executable, "-c", "import os, sys; print(sys.stdin.read() + os.environ['ECR_COPY_TEST'])"],
            env={"ECR_COPY_TEST": "-env"},
            input_text="stdin",
        )
        assert result.ok
        assert result.stdout.strip() == "stdin-env"

    def test_missing_executable_raises_transfer_error(self):
        """Test an executable that cannot start is a transfer failure."""
        with pytest.raises(TransferError, match="Cannot execute"):
            SubprocessCommandRunner().run(["ecr-copy-no-such-binary"])

    def test_kills_process_on_timeout(self):
        """Test a running command is killed when the deadline passes."""
        runner = SubprocessCommandRunner(poll_interval=0.05)
        token = CancelToken(timeout_seconds=0.2)
        start = time.monotonic()
        with pytest.raises(CopyTimeoutError):
            runner.run([sys.executable, "-c", "import time; time.sleep(30)"], cancel_token=token)
        assert time.monotonic() - start < 10

    def test_kills_process_on_fail_fast(self):
        """Test a running command is killed when the batch fails fast."""
        runner = SubprocessCommandRunner(poll_interval=0.05)
        token = CancelToken()
        token.cancel(CancelReason.FAIL_FAST)
        with pytest.raises(JobCancelledError):
            runner.run([sys.executable, "-c", "import time; time.sleep(30)"], cancel_token=token)
