#!/usr/bin/env python3

"""Testing fixtures."""

import logging
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest
from docker import DockerClient, from_env

from docbac.config import Settings
from docbac.data_structures import ContainerInfo
from docbac.logger import logger


@pytest.fixture(autouse=True)
def reset_logger() -> Generator:
    """Removes file handlers and restores the log level which CLI runs change."""
    yield
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.DEBUG)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Returns settings with every path located in the test's temporary directory.

    Returns:
        Settings: Settings instance with graceful backup enabled.
    """
    return Settings(
        remote_name="gdrive",
        compose_stacks_dir=tmp_path.joinpath("compose-stacks"),
        log_dir=None,
        enable_graceful_backup=True,
        state_file=tmp_path.joinpath("state", "graceful-state.json"),
        docker_volumes_dir=tmp_path.joinpath("docker-volumes"),
        work_dir=tmp_path.joinpath("work"),
    )


@pytest.fixture
def make_container() -> Callable:
    """Returns a callable creating a container labeled for graceful backup.

    Returns:
        Callable: Callable function.
    """

    def func(
        name: str,
        running: bool = True,
        labels: Optional[Dict[str, str]] = None,
        project: Optional[str] = None,
        service: Optional[str] = None,
    ) -> ContainerInfo:
        all_labels = {"backup.graceful": "true"}
        all_labels.update(labels or {})
        return ContainerInfo(
            name=name,
            running=running,
            labels=all_labels,
            compose_project=project,
            compose_service=service,
            compose_working_dir=None,
        )

    return func


@pytest.fixture(scope="session")
def docker_client() -> DockerClient:
    """Returns the host's docker client.

    Returns:
        DockerClient: Docker client instance.
    """
    client = from_env()
    return client


@pytest.fixture
def sleeping_container(docker_client: DockerClient) -> Generator:
    """Runs a labeled alpine container for the duration of the test."""
    container_name = "docbac_sleeping_container"
    container = docker_client.containers.run(
        "alpine:3.18",
        ["sleep", "infinity"],
        name=container_name,
        labels={"backup.graceful": "true", "backup.graceful.method": "pause"},
        detach=True,
    )
    try:
        yield container_name
    finally:
        container.remove(force=True)
