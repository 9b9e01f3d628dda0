#!/usr/bin/env python3

"""Docker volume discovery and naming."""

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from docker import DockerClient
from docker.errors import DockerException, NotFound
from pydantic import ValidationError

from docbac.data_structures import VolumeDescriptor
from docbac.errors import ContainerRuntimeError
from docbac.logger import logger

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
COMPOSE_VOLUME_LABEL = "com.docker.compose.volume"

SIDECAR_FILE_NAME = "volume.json"
PAYLOAD_DIR_NAME = "data"


def meaningful_name(volume: VolumeDescriptor) -> str:
    """Derives a human readable name for a volume.

    The first matching rule wins:

        >>> meaningful_name(VolumeDescriptor(volume_id="x", project="app", volume_label="db"))
        'app_db'
        >>> meaningful_name(VolumeDescriptor(volume_id="x", project="app", service="web"))
        'app_web'
        >>> meaningful_name(VolumeDescriptor(volume_id="x", project="app"))
        'app_volume'
        >>> meaningful_name(VolumeDescriptor(volume_id="x", attached_containers=["c1", "c2"]))
        'c1_volume'
        >>> meaningful_name(VolumeDescriptor(volume_id="abcdef0123456789"))
        'vol_abcdef012345'
    """
    if volume.project and volume.volume_label:
        return f"{volume.project}_{volume.volume_label}"
    if volume.project and volume.service:
        return f"{volume.project}_{volume.service}"
    if volume.project:
        return f"{volume.project}_volume"
    if volume.attached_containers:
        return f"{volume.attached_containers[0]}_volume"
    return f"vol_{volume.volume_id[:12]}"


def describe_volume(client: DockerClient, volume_id: str, attrs: Dict) -> VolumeDescriptor:
    labels = attrs.get("Labels") or {}

    try:
        containers = [
            container.name for container in client.containers.list(all=True, filters={"volume": volume_id})
        ]
    except DockerException as error:
        logger.warning(f"Unable to list containers using volume '{volume_id}': {error}")
        containers = []

    descriptor = VolumeDescriptor(
        volume_id=volume_id,
        project=labels.get(COMPOSE_PROJECT_LABEL) or None,
        service=labels.get(COMPOSE_SERVICE_LABEL) or None,
        volume_label=labels.get(COMPOSE_VOLUME_LABEL) or None,
        attached_containers=containers,
        created_at=attrs.get("CreatedAt"),
        labels=dict(labels),
    )

    return descriptor.model_copy(update={"meaningful_name": meaningful_name(descriptor)})


def discover_volumes(client: DockerClient) -> List[VolumeDescriptor]:
    """Returns a descriptor for every volume known to the docker daemon.

    Raises:
        ContainerRuntimeError: If the volumes cannot be listed.
    """
    try:
        volumes = client.volumes.list()
    except DockerException as error:
        raise ContainerRuntimeError(f"Failed to list docker volumes: {error}") from error

    return [describe_volume(client, volume.name, volume.attrs) for volume in volumes]


def get_volume(client: DockerClient, name: str) -> VolumeDescriptor:
    """Returns the descriptor of a single volume.

    Raises:
        ContainerRuntimeError: If the volume does not exist or cannot be inspected.
    """
    try:
        volume = client.volumes.get(name)
    except NotFound as error:
        raise ContainerRuntimeError(f"Volume '{name}' not found") from error
    except DockerException as error:
        raise ContainerRuntimeError(f"Failed to inspect volume '{name}': {error}") from error

    return describe_volume(client, volume.name, volume.attrs)


def directory_names(volumes: Sequence[VolumeDescriptor]) -> Dict[str, str]:
    """Maps every volume id to a unique directory name based on its meaningful name.

    Volumes sharing a meaningful name are told apart by the first 12 characters of their id.
    """
    counts: Dict[str, int] = {}
    for volume in volumes:
        counts[volume.meaningful_name] = counts.get(volume.meaningful_name, 0) + 1

    return {
        volume.volume_id: (
            volume.meaningful_name
            if counts[volume.meaningful_name] == 1
            else f"{volume.meaningful_name}_{volume.volume_id[:12]}"
        )
        for volume in volumes
    }


def summary_line(volume: VolumeDescriptor) -> str:
    containers = ",".join(volume.attached_containers) or "none"
    project = volume.project or "none"
    return f"{volume.meaningful_name} ({volume.volume_id}) - Project: {project} - Containers: {containers}"


def write_sidecar(volume: VolumeDescriptor, directory: Path) -> Path:
    path = directory.joinpath(SIDECAR_FILE_NAME)
    with open(path, "w") as file:
        json.dump(volume.model_dump(mode="json"), file, indent=2)
    return path


def read_sidecar(directory: Path) -> Optional[VolumeDescriptor]:
    """Reads the volume descriptor stored next to a volume's backed up data. Returns None if there is none."""
    path = directory.joinpath(SIDECAR_FILE_NAME)
    if not path.is_file():
        return None

    try:
        with open(path, "r") as file:
            return VolumeDescriptor.model_validate(json.load(file))
    except (OSError, json.JSONDecodeError, ValidationError) as error:
        logger.warning(f"Ignoring unreadable volume info '{path}': {error}")
        return None
