"""Integration tests for the complete copy pipeline."""

import pytest

from ecr_copy.core.commands import CommandResult
from ecr_copy.core.exceptions import ConfigurationError
from ecr_copy.core.factories import CopyPipelineFactory
from ecr_copy.core.models import (
    AssumeRoleAuth,
    ErrorKind,
    HostCapabilities,
    OutcomeState,
    ProfileAuth,
)
from ecr_copy.core.services import create_run_spec
from ecr_copy.testing.fakes import (
    FakeCommandRunner,
    FakeLogger,
    fake_digest,
    setup_test_registry_environment,
    skopeo_copy_handler,
)


def _spec(images=("svc-a:v1", "svc-b:v1"), target_auth=None, **options):
    return create_run_spec(
        images=list(images),
        source_auth=ProfileAuth(name="prod"),
        target_auth=target_auth or ProfileAuth(name="dr"),
        source_region="us-east-1",
        target_region="us-west-2",
        options=options,
    )


@pytest.fixture
def sessions():
    return setup_test_registry_environment()


@pytest.fixture
def runner(sessions):
    fake = FakeCommandRunner()
    fake.on(["skopeo", "copy"], skopeo_copy_handler(sessions))
    return fake


def _pipeline(sessions, runner, capabilities=None):
    return CopyPipelineFactory.create_pipeline(
        runner=runner,
        logger=FakeLogger(),
        capability_probe=lambda: capabilities or HostCapabilities(direct_copy_tool=True),
        session_factory=sessions,
    )


class TestPipelineIntegration:
    """Integration tests for the complete copy pipeline."""

    def test_end_to_end_direct_copy(self, sessions, runner):
        """Test two images are copied and verified across accounts."""
        result = _pipeline(sessions, runner).run(_spec(concurrency=2))

        assert result.exit_code == 0
        assert [o.state for o in result.outcomes] == [OutcomeState.SUCCEEDED, OutcomeState.SUCCEEDED]
        for outcome in result.outcomes:
            assert outcome.attempts == 1
            assert outcome.source_digest == outcome.target_digest == fake_digest(str(outcome.image))

        target_ecr = sessions.sessions["dr"].ecr
        assert target_ecr.repositories["svc-a"].images["v1"] == fake_digest("svc-a:v1")
        assert len(runner.commands_starting_with("skopeo", "copy")) == 2

    def test_credentials_resolved_once_per_side(self, sessions, runner):
        """Test concurrent jobs share one resolution per identity."""
        _pipeline(sessions, runner).run(_spec(concurrency=2))

        profiles = sorted(call.get("profile_name") for call in sessions.calls)
        assert profiles == ["dr", "prod"]
        assert sessions.sessions["prod"].ecr.calls.count("get_authorization_token") == 1
        assert sessions.sessions["dr"].ecr.calls.count("get_authorization_token") == 1

    def test_assume_role_target(self, sessions, runner):
        """Test pushing into an account reached by assuming a role."""
        target_auth = AssumeRoleAuth(arn="arn:aws:iam::222222222222:role/ecr-push")

        result = _pipeline(sessions, runner).run(_spec(images=["svc-a:v1"], target_auth=target_auth))

        assert result.exit_code == 0
        assert "svc-a" in sessions.sessions["dr"].ecr.repositories

    def test_persistent_transfer_failure(self, sessions, runner):
        """Test a copy that keeps failing is attempted retry_limit + 1 times."""
        runner.on(["skopeo", "copy"], CommandResult([], 1, stderr="connection reset by peer"))

        result = _pipeline(sessions, runner).run(_spec(images=["svc-a:v1"], retry_limit=2))

        outcome = result.outcomes[0]
        assert outcome.state == OutcomeState.FAILED
        assert outcome.attempts == 3
        assert outcome.error.kind == ErrorKind.TRANSFER
        assert result.exit_code == 5

    def test_missing_source_image(self, sessions, runner):
        """Test a missing source image fails with its own exit code and no transfer."""
        result = _pipeline(sessions, runner).run(_spec(images=["svc-c:v1"]))

        assert result.outcomes[0].error.kind == ErrorKind.SOURCE_NOT_FOUND
        assert result.exit_code == 6
        assert runner.commands_starting_with("skopeo") == []

    def test_target_repository_creation_disabled(self, sessions, runner):
        """Test a missing target repository fails when creation is disabled."""
        result = _pipeline(sessions, runner).run(_spec(images=["svc-a:v1"], create_target_repository=False))

        assert result.exit_code == 7

    def test_fail_fast_cancels_remaining_images(self, sessions, runner):
        """Test the batch stops after the first image that fails for good."""
        result = _pipeline(sessions, runner).run(
            _spec(images=["svc-c:v1", "svc-a:v1", "svc-b:v1"], fail_fast=True)
        )

        assert [o.state for o in result.outcomes] == [
            OutcomeState.FAILED,
            OutcomeState.CANCELLED,
            OutcomeState.CANCELLED,
        ]
        assert result.exit_code == 6

    def test_pull_tag_push_fallback(self, sessions):
        """Test the docker path when skopeo is unavailable."""
        runner = FakeCommandRunner()

        def push(argv, env, input_text):
            host, path = argv[-1].split("/", 1)
            repository, tag = path.rsplit(":", 1)
            sessions.sessions["dr"].ecr.put_image(repository, tag, fake_digest(f"{repository}:{tag}"))
            return CommandResult(argv, 0)

        runner.on(["docker", "push"], push)
        runner.on(["docker", "image", "inspect"], CommandResult([], 1, stderr="No such image"))

        result = _pipeline(sessions, runner, HostCapabilities(engine_daemon=True)).run(_spec(images=["svc-a:v1"]))

        assert result.exit_code == 0
        assert runner.commands_starting_with("docker", "pull")
        assert len(runner.commands_starting_with("docker", "rmi")) == 3

    def test_bad_reference_is_rejected_before_running(self):
        """Test a malformed reference fails validation with no outcomes."""
        with pytest.raises(ConfigurationError) as excinfo:
            _spec(images=["svc-a:v1", "bad ref"])
        assert excinfo.value.exit_code == 2
