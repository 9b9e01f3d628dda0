#!/usr/bin/env python3

"""Discovers running containers which opted in to graceful backup."""

from typing import List

from docbac.abstract.container_runtime import ContainerRuntime
from docbac.data_structures import ComposeAssociation, ContainerInfo, ContainerRecord
from docbac.errors import ContainerRuntimeError
from docbac.logger import logger


def label_filter(marker: str) -> str:
    return f"{marker}=true"


def discover(runtime: ContainerRuntime, marker: str) -> List[ContainerRecord]:
    """Returns a record for every running container labeled '<marker>=true', in the order reported by the runtime.

    Containers that cannot be inspected (e.g. removed in the meantime) are skipped with a warning.
    """
    names = runtime.list_running(label_filter(marker))

    records: List[ContainerRecord] = []
    for name in names:
        try:
            info = runtime.inspect(name)
        except ContainerRuntimeError as error:
            logger.warning(f"Container {name} not found, skipping: {error}")
            continue

        records.append(to_record(info))

    return records


def to_record(info: ContainerInfo) -> ContainerRecord:
    compose = None
    if info.compose_project and info.compose_service:
        compose = ComposeAssociation(
            project=info.compose_project,
            service=info.compose_service,
            working_dir=info.compose_working_dir or None,
        )

    return ContainerRecord(name=info.name, is_running=info.running, compose=compose, labels=dict(info.labels))
