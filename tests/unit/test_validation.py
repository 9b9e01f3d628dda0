"""Unit tests for module docbac.validation."""

from logging import ERROR, INFO, WARNING

from pytest import LogCaptureFixture

from docbac.config import Settings
from docbac.errors import ContainerRuntimeError
from docbac.validation import (
    run_validation,
    validate_compose_stacks_dir,
    validate_docker,
    validate_environment,
    validate_graceful_backup,
    validate_remote,
)
from tests.utils.dummies import (
    DummyContainer,
    DummyContainers,
    DummyDockerClient,
    DummyVolume,
    DummyVolumes,
    FakeRemote,
)


def unreachable_docker() -> DummyDockerClient:
    raise ContainerRuntimeError("Cannot access Docker daemon: connection refused")


def test_validate_environment_requires_remote(caplog: LogCaptureFixture) -> None:
    assert validate_environment(Settings(remote_name="gdrive"))
    assert not validate_environment(Settings())
    assert ("docbac.logger", ERROR, "Missing required environment variable: GDRIVE_REMOTE_NAME") in caplog.record_tuples


def test_validate_docker_returns_client(settings: Settings, caplog: LogCaptureFixture) -> None:
    settings.docker_volumes_dir.mkdir(parents=True)
    client = DummyDockerClient(volumes=DummyVolumes([DummyVolume("a"), DummyVolume("b")]))

    assert validate_docker(settings, lambda: client) is client
    assert ("docbac.logger", INFO, "Found 2 Docker volumes") in caplog.record_tuples


def test_validate_docker_fails_without_daemon_or_volumes_dir(settings: Settings) -> None:
    assert validate_docker(settings, unreachable_docker) is None
    assert validate_docker(settings, DummyDockerClient) is None


def test_validate_docker_warns_if_there_are_no_volumes(settings: Settings, caplog: LogCaptureFixture) -> None:
    settings.docker_volumes_dir.mkdir(parents=True)

    assert validate_docker(settings, DummyDockerClient) is not None
    assert ("docbac.logger", WARNING, "No Docker volumes found on the system") in caplog.record_tuples


def test_validate_remote_creates_backup_directories() -> None:
    remote = FakeRemote()

    assert validate_remote(remote)
    assert remote.ensured == ["volumes", "compose-stacks"]


def test_validate_remote_fails_if_remote_is_unreachable(caplog: LogCaptureFixture) -> None:
    assert not validate_remote(FakeRemote(fail=["connect"]))
    assert ("docbac.logger", ERROR, "Please check your rclone configuration") in caplog.record_tuples


def test_validate_graceful_backup_lists_labeled_containers(settings: Settings, caplog: LogCaptureFixture) -> None:
    client = DummyDockerClient(containers=DummyContainers([DummyContainer("db"), DummyContainer("cache")]))

    validate_graceful_backup(settings, client)

    assert ("docbac.logger", INFO, "Found containers with graceful backup enabled: db cache") in caplog.record_tuples


def test_validate_compose_stacks_dir(settings: Settings) -> None:
    assert not validate_compose_stacks_dir(settings)

    settings.compose_stacks_dir.mkdir(parents=True)

    assert validate_compose_stacks_dir(settings)


def test_run_validation_passes(settings: Settings, caplog: LogCaptureFixture) -> None:
    settings.docker_volumes_dir.mkdir(parents=True)

    assert run_validation(settings, client_factory=DummyDockerClient, remote_factory=lambda _: FakeRemote())
    assert ("docbac.logger", INFO, "Configuration validation PASSED") in caplog.record_tuples


def test_run_validation_fails_for_any_required_check(settings: Settings, caplog: LogCaptureFixture) -> None:
    settings.docker_volumes_dir.mkdir(parents=True)

    assert not run_validation(settings, client_factory=unreachable_docker, remote_factory=lambda _: FakeRemote())
    assert not run_validation(
        settings, client_factory=DummyDockerClient, remote_factory=lambda _: FakeRemote(fail=["mkdir"])
    )
    assert not run_validation(
        settings.model_copy(update={"remote_name": None}),
        client_factory=DummyDockerClient,
        remote_factory=lambda _: FakeRemote(),
    )
    assert ("docbac.logger", ERROR, "Configuration validation FAILED") in caplog.record_tuples
