"""Unit tests for module docbac.restore."""

from datetime import datetime
from logging import INFO
from pathlib import Path
from typing import List

import pytest
from _pytest.monkeypatch import MonkeyPatch
from pytest import LogCaptureFixture

from docbac.config import Settings
from docbac.data_structures import RetentionCandidate, VolumeDescriptor
from docbac.errors import ConfigurationError, RemoteStorageError
from docbac.restore import FILL_VOLUME_COMMAND, Restorer, ask_confirmation
from docbac.utils import tar_directory
from docbac.volumes import write_sidecar
from tests.utils.dummies import DummyContainers, DummyDockerClient, DummyVolume, DummyVolumes, FakeRemote


def upload_archive(source: Path, remote_dir: Path, backup_class: str, name: str) -> str:
    target = remote_dir.joinpath(backup_class)
    target.mkdir(parents=True, exist_ok=True)
    return tar_directory(source, name, target).name


@pytest.fixture
def volumes_archive(tmp_path: Path) -> str:
    """Uploads a volumes archive holding one volume with descriptor and one legacy directory without."""
    staging = tmp_path.joinpath("staging")
    staging.joinpath("app_db", "data").mkdir(parents=True)
    staging.joinpath("app_db", "data", "PG_VERSION").write_text("15")
    write_sidecar(
        VolumeDescriptor(volume_id="app_pgdata", meaningful_name="app_db", project="app", volume_label="db"),
        staging.joinpath("app_db"),
    )
    staging.joinpath("legacy").mkdir()
    staging.joinpath("legacy", "file").write_text("content")

    return upload_archive(staging, tmp_path.joinpath("remote"), "volumes", "backup_volumes_20231225_020000")


def test_list_backups_sorts_newest_first(settings: Settings, caplog: LogCaptureFixture) -> None:
    remote = FakeRemote(
        listings={
            "volumes": [
                RetentionCandidate("backup_volumes_20231224_020000.tar.gz", datetime(2023, 12, 24, 2)),
                RetentionCandidate("backup_volumes_20231225_020000.tar.gz", datetime(2023, 12, 25, 2)),
            ]
        }
    )

    backups = Restorer(settings, None, remote).list_backups("volumes")

    assert [backup.path for backup in backups] == [
        "backup_volumes_20231225_020000.tar.gz",
        "backup_volumes_20231224_020000.tar.gz",
    ]
    assert (
        "docbac.logger",
        INFO,
        "  2023-12-25 02:00:00  backup_volumes_20231225_020000.tar.gz",
    ) in caplog.record_tuples


def test_list_backups_shows_size_if_known(settings: Settings, caplog: LogCaptureFixture) -> None:
    remote = FakeRemote(
        listings={
            "compose-stacks": [
                RetentionCandidate(
                    "backup_compose-stacks_20231225_020000.tar.gz", datetime(2023, 12, 25, 2), size=1536
                ),
            ]
        }
    )

    Restorer(settings, None, remote).list_backups("compose-stacks")

    assert (
        "docbac.logger",
        INFO,
        "  2023-12-25 02:00:00     1.5KB  backup_compose-stacks_20231225_020000.tar.gz",
    ) in caplog.record_tuples


def test_list_backups_raises_error_for_unknown_class(settings: Settings) -> None:
    with pytest.raises(ConfigurationError):
        Restorer(settings, None, FakeRemote()).list_backups("databases")


def test_restore_volumes_restores_under_original_names(
    settings: Settings, tmp_path: Path, volumes_archive: str
) -> None:
    client = DummyDockerClient(volumes=DummyVolumes([DummyVolume("legacy")]))
    restorer = Restorer(settings, client, FakeRemote(storage_dir=tmp_path.joinpath("remote")))

    restored, failed = restorer.restore_volumes(volumes_archive)

    assert restored == ["app_pgdata", "legacy"]
    assert failed == []
    assert client.volumes.created == ["app_pgdata"]

    runs = client.containers.runs
    assert [run["command"] for run in runs] == [["sh", "-c", FILL_VOLUME_COMMAND]] * 2
    assert runs[0]["volumes"]["app_pgdata"] == {"bind": "/target", "mode": "rw"}
    assert [bind for bind in runs[0]["volumes"] if bind != "app_pgdata"][0].endswith("app_db/data")
    assert [bind for bind in runs[1]["volumes"] if bind != "legacy"][0].endswith("legacy")
    assert all(run["remove"] for run in runs)


def test_restore_volumes_cleans_up_work_dir(settings: Settings, tmp_path: Path, volumes_archive: str) -> None:
    restorer = Restorer(settings, DummyDockerClient(), FakeRemote(storage_dir=tmp_path.joinpath("remote")))

    restorer.restore_volumes(volumes_archive)

    assert list(settings.work_dir.iterdir()) == []


def test_restore_volumes_reports_failed_volumes(settings: Settings, tmp_path: Path, volumes_archive: str) -> None:
    client = DummyDockerClient(containers=DummyContainers(fail_run=True))
    restorer = Restorer(settings, client, FakeRemote(storage_dir=tmp_path.joinpath("remote")))

    restored, failed = restorer.restore_volumes(volumes_archive)

    assert restored == []
    assert failed == ["app_pgdata", "legacy"]


def test_restore_volumes_requires_docker(settings: Settings, tmp_path: Path, volumes_archive: str) -> None:
    restorer = Restorer(settings, None, FakeRemote(storage_dir=tmp_path.joinpath("remote")))

    _, failed = restorer.restore_volumes(volumes_archive)

    assert failed == ["app_pgdata", "legacy"]


def test_restore_volumes_raises_error_for_missing_backup(settings: Settings, tmp_path: Path) -> None:
    restorer = Restorer(settings, DummyDockerClient(), FakeRemote(storage_dir=tmp_path.joinpath("remote")))

    with pytest.raises(RemoteStorageError):
        restorer.restore_volumes("backup_volumes_19700101_000000.tar.gz")


@pytest.fixture
def compose_archive(tmp_path: Path) -> str:
    staging = tmp_path.joinpath("stacks")
    staging.joinpath("app").mkdir(parents=True)
    staging.joinpath("app", "docker-compose.yaml").write_text("services: {}\n")

    return upload_archive(
        staging, tmp_path.joinpath("remote"), "compose-stacks", "backup_compose-stacks_20231225_020000"
    )


def test_restore_compose_stacks_overwrites_target(settings: Settings, tmp_path: Path, compose_archive: str) -> None:
    settings.compose_stacks_dir.joinpath("app").mkdir(parents=True)
    settings.compose_stacks_dir.joinpath("app", "docker-compose.yaml").write_text("broken")
    settings.compose_stacks_dir.joinpath("other.yaml").write_text("kept")
    prompts: List[str] = []

    def confirm(prompt: str) -> bool:
        prompts.append(prompt)
        return True

    restorer = Restorer(settings, None, FakeRemote(storage_dir=tmp_path.joinpath("remote")), confirm=confirm)

    assert restorer.restore_compose_stacks(compose_archive)
    assert len(prompts) == 1
    assert settings.compose_stacks_dir.joinpath("app", "docker-compose.yaml").read_text() == "services: {}\n"
    assert settings.compose_stacks_dir.joinpath("other.yaml").read_text() == "kept"


def test_restore_compose_stacks_can_be_cancelled(
    settings: Settings, tmp_path: Path, compose_archive: str, caplog: LogCaptureFixture
) -> None:
    remote = FakeRemote(storage_dir=tmp_path.joinpath("remote"), fail=["download"])
    restorer = Restorer(settings, None, remote, confirm=lambda _: False)

    assert not restorer.restore_compose_stacks(compose_archive)
    assert not settings.compose_stacks_dir.exists()
    assert ("docbac.logger", INFO, "Restore cancelled") in caplog.record_tuples


def test_restore_compose_stacks_without_confirmation(settings: Settings, tmp_path: Path, compose_archive: str) -> None:
    def confirm(prompt: str) -> bool:
        raise AssertionError("must not ask")

    restorer = Restorer(settings, None, FakeRemote(storage_dir=tmp_path.joinpath("remote")), confirm=confirm)

    assert restorer.restore_compose_stacks(compose_archive, assume_yes=True)
    assert settings.compose_stacks_dir.joinpath("app", "docker-compose.yaml").is_file()


@pytest.mark.parametrize("answer, expected", [("y", True), ("YES", True), ("n", False), ("", False)])
def test_ask_confirmation(monkeypatch: MonkeyPatch, answer: str, expected: bool) -> None:
    monkeypatch.setattr("builtins.input", lambda _: answer)

    assert ask_confirmation("Continue? ") == expected


def test_ask_confirmation_declines_without_input(monkeypatch: MonkeyPatch) -> None:
    def no_input(_: str) -> str:
        raise EOFError()

    monkeypatch.setattr("builtins.input", no_input)

    assert not ask_confirmation("Continue? ")
