"""Tests for fake implementations to ensure they work correctly."""

import pytest
from botocore.exceptions import ClientError, ProfileNotFound

from ecr_copy.core.commands import CommandResult
from ecr_copy.core.observability import LogContext
from ecr_copy.testing.fakes import (
    FakeCommandRunner,
    FakeEcrClient,
    FakeLogger,
    FakeSessionFactory,
    fake_digest,
    setup_test_registry_environment,
)


class TestFakeEcrClient:
    """Tests for FakeEcrClient to ensure it behaves like ECR."""

    def test_put_and_describe_image(self):
        """Test stored images are described with their digest."""
        client = FakeEcrClient()
        digest = client.put_image("svc", "v1")

        response = client.describe_images(repositoryName="svc", imageIds=[{"imageTag": "v1"}])

        assert digest == fake_digest("svc:v1")
        assert response["imageDetails"][0]["imageDigest"] == digest

    def test_describe_missing_image(self):
        """Test a missing tag raises ImageNotFoundException."""
        client = FakeEcrClient()
        client.create_repo("svc")

        with pytest.raises(ClientError) as excinfo:
            client.describe_images(repositoryName="svc", imageIds=[{"imageTag": "v1"}])
        assert excinfo.value.response["Error"]["Code"] == "ImageNotFoundException"

    def test_create_existing_repository(self):
        """Test creating a repository twice fails like ECR."""
        client = FakeEcrClient()
        client.create_repository(repositoryName="svc")

        with pytest.raises(ClientError) as excinfo:
            client.create_repository(repositoryName="svc")
        assert excinfo.value.response["Error"]["Code"] == "RepositoryAlreadyExistsException"

    def test_authorization_token(self):
        """Test the token payload has an aware expiry."""
        data = FakeEcrClient("123456789012").get_authorization_token()["authorizationData"][0]
        assert data["expiresAt"].tzinfo is not None
        assert data["authorizationToken"]


class TestFakeSessionFactory:
    """Tests for FakeSessionFactory."""

    def test_sessions_are_looked_up_by_profile(self):
        """Test named sessions of the registry environment."""
        factory = setup_test_registry_environment()

        session = factory(profile_name="dr", region_name="us-west-2")

        assert session.client("sts").get_caller_identity()["Account"] == "222222222222"
        assert factory.calls == [{"profile_name": "dr", "region_name": "us-west-2"}]

    def test_unknown_profile(self):
        """Test an unknown profile raises like boto3."""
        factory = FakeSessionFactory({})
        with pytest.raises(ProfileNotFound):
            factory(profile_name="nope")


class TestFakeCommandRunner:
    """Tests for FakeCommandRunner."""

    def test_default_success_and_recording(self):
        """Test unscripted commands succeed and are recorded."""
        runner = FakeCommandRunner()
        result = runner.run(["docker", "info"], env={"A": "1"})
        assert result.ok
        assert runner.commands == [["docker", "info"]]
        assert runner.envs == [{"A": "1"}]

    def test_later_handlers_win(self):
        """Test the most recent matching handler is used."""
        runner = FakeCommandRunner()
        runner.on(["docker"], CommandResult([], 1))
        runner.on(["docker", "pull"], CommandResult([], 0, stdout="pulled"))

        assert runner.run(["docker", "pull", "x"]).stdout == "pulled"
        assert not runner.run(["docker", "push", "x"]).ok


class TestFakeLogger:
    """Tests for FakeLogger."""

    def test_logging_with_context(self):
        """Test log entries carry context fields."""
        logger = FakeLogger()
        context = LogContext(correlation_id="svc:v1#1", component="copy_job").with_metadata(stage="transfer")

        logger.info("Copied", context, digest="sha256:a")
        logger.warning("Slow")

        info = logger.get_logs("INFO")[0]
        assert info["correlation_id"] == "svc:v1#1"
        assert info["stage"] == "transfer"
        assert info["digest"] == "sha256:a"
        assert len(logger.get_logs()) == 2
