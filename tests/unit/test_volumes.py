"""Unit tests for module docbac.volumes."""

from logging import WARNING
from pathlib import Path

import pytest
from docker.errors import DockerException
from pytest import LogCaptureFixture

from docbac.data_structures import VolumeDescriptor
from docbac.errors import ContainerRuntimeError
from docbac.volumes import (
    SIDECAR_FILE_NAME,
    describe_volume,
    directory_names,
    discover_volumes,
    get_volume,
    meaningful_name,
    read_sidecar,
    summary_line,
    write_sidecar,
)
from tests.utils.dummies import DummyContainer, DummyContainers, DummyDockerClient, DummyVolume, DummyVolumes


def test_meaningful_name_prefers_project_and_volume_label() -> None:
    assert meaningful_name(VolumeDescriptor(volume_id="x", project="app", service="web", volume_label="db")) == "app_db"


def test_meaningful_name_uses_service_without_volume_label() -> None:
    assert meaningful_name(VolumeDescriptor(volume_id="x", project="app", service="web")) == "app_web"


def test_meaningful_name_uses_project_only() -> None:
    assert meaningful_name(VolumeDescriptor(volume_id="x", project="app")) == "app_volume"


def test_meaningful_name_uses_first_attached_container_without_project() -> None:
    assert meaningful_name(VolumeDescriptor(volume_id="x", attached_containers=["c1", "c2"])) == "c1_volume"


def test_meaningful_name_falls_back_to_volume_id_prefix() -> None:
    assert meaningful_name(VolumeDescriptor(volume_id="abcdef0123456789")) == "vol_abcdef012345"


def test_describe_volume_reads_compose_labels_and_containers() -> None:
    client = DummyDockerClient(
        containers=DummyContainers([DummyContainer("app-db-1", volumes=["app_pgdata"]), DummyContainer("other")])
    )
    labels = {
        "com.docker.compose.project": "app",
        "com.docker.compose.volume": "pgdata",
        "com.docker.compose.version": "2.21.0",
    }

    volume = describe_volume(client, "app_pgdata", {"Labels": labels, "CreatedAt": "2023-12-25T12:00:00Z"})

    assert volume.meaningful_name == "app_pgdata"
    assert volume.project == "app"
    assert volume.service is None
    assert volume.volume_label == "pgdata"
    assert volume.attached_containers == ["app-db-1"]
    assert volume.created_at == "2023-12-25T12:00:00Z"
    assert volume.labels == labels


def test_describe_volume_handles_missing_labels() -> None:
    volume = describe_volume(DummyDockerClient(), "abcdef0123456789", {"Labels": None})

    assert volume.meaningful_name == "vol_abcdef012345"
    assert volume.labels == {}


def test_describe_volume_tolerates_container_listing_errors(caplog: LogCaptureFixture) -> None:
    class BrokenContainers(DummyContainers):
        def list(self, all: bool = False, filters=None):
            raise DockerException("daemon gone")

    volume = describe_volume(DummyDockerClient(containers=BrokenContainers()), "data", {})

    assert volume.attached_containers == []
    assert any(level == WARNING for _, level, _ in caplog.record_tuples)


def test_discover_volumes() -> None:
    client = DummyDockerClient(
        volumes=DummyVolumes([DummyVolume("first", {"com.docker.compose.project": "app"}), DummyVolume("second")])
    )

    volumes = discover_volumes(client)

    assert [(volume.volume_id, volume.meaningful_name) for volume in volumes] == [
        ("first", "app_volume"),
        ("second", "vol_second"),
    ]


def test_discover_volumes_raises_error_if_docker_fails() -> None:
    with pytest.raises(ContainerRuntimeError):
        discover_volumes(DummyDockerClient(volumes=DummyVolumes(raise_on_list=True)))


def test_get_volume() -> None:
    client = DummyDockerClient(
        volumes=DummyVolumes([DummyVolume("app_data", {"com.docker.compose.project": "app"}), DummyVolume("other")]),
        containers=DummyContainers([DummyContainer("app-web-1", volumes=["app_data"])]),
    )

    volume = get_volume(client, "app_data")

    assert volume.volume_id == "app_data"
    assert volume.meaningful_name == "app_volume"
    assert volume.attached_containers == ["app-web-1"]


def test_get_volume_raises_error_for_missing_volume() -> None:
    with pytest.raises(ContainerRuntimeError, match="Volume 'missing' not found"):
        get_volume(DummyDockerClient(), "missing")


def test_directory_names_disambiguates_equal_names() -> None:
    volumes = [
        VolumeDescriptor(volume_id="aaaaaaaaaaaaaaaa", meaningful_name="app_volume"),
        VolumeDescriptor(volume_id="bbbbbbbbbbbbbbbb", meaningful_name="app_volume"),
        VolumeDescriptor(volume_id="cccc", meaningful_name="app_db"),
    ]

    assert directory_names(volumes) == {
        "aaaaaaaaaaaaaaaa": "app_volume_aaaaaaaaaaaa",
        "bbbbbbbbbbbbbbbb": "app_volume_bbbbbbbbbbbb",
        "cccc": "app_db",
    }


def test_summary_line() -> None:
    volume = VolumeDescriptor(
        volume_id="app_pgdata", meaningful_name="app_pgdata", project="app", attached_containers=["db", "backup"]
    )

    assert summary_line(volume) == "app_pgdata (app_pgdata) - Project: app - Containers: db,backup"
    assert summary_line(VolumeDescriptor(volume_id="x", meaningful_name="vol_x")) == (
        "vol_x (x) - Project: none - Containers: none"
    )


def test_sidecar_is_read_back(tmp_path: Path) -> None:
    volume = VolumeDescriptor(volume_id="app_pgdata", meaningful_name="app_pgdata", project="app")

    path = write_sidecar(volume, tmp_path)

    assert path == tmp_path.joinpath(SIDECAR_FILE_NAME)
    assert read_sidecar(tmp_path) == volume


def test_read_sidecar_returns_none_for_missing_or_invalid_file(tmp_path: Path) -> None:
    assert read_sidecar(tmp_path) is None

    tmp_path.joinpath(SIDECAR_FILE_NAME).write_text("{broken")

    assert read_sidecar(tmp_path) is None
