"""Testing utilities and fakes for the ECR copy engine."""

from .fakes import (
    FakeCommandRunner,
    FakeCredentialResolver,
    FakeEcrClient,
    FakeLogger,
    FakeRegistryClient,
    FakeSession,
    FakeSessionFactory,
    FakeStsClient,
    FakeTransferBackend,
    client_error,
    fake_digest,
    make_credentials,
    make_token,
    setup_test_registry_environment,
    skopeo_copy_handler,
)

__all__ = [
    "FakeCommandRunner",
    "FakeCredentialResolver",
    "FakeEcrClient",
    "FakeLogger",
    "FakeRegistryClient",
    "FakeSession",
    "FakeSessionFactory",
    "FakeStsClient",
    "FakeTransferBackend",
    "client_error",
    "fake_digest",
    "make_credentials",
    "make_token",
    "setup_test_registry_environment",
    "skopeo_copy_handler",
]
