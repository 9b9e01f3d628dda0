#!/usr/bin/env python3

"""Container runtime backed by the docker SDK."""

from typing import Callable, List, Optional, TypeVar

from docker import DockerClient, from_env
from docker.errors import DockerException, NotFound
from docker.models.containers import Container

from docbac.abstract.container_runtime import ContainerRuntime
from docbac.data_structures import ContainerInfo
from docbac.errors import ContainerNotFoundError, ContainerRuntimeError

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
COMPOSE_WORKING_DIR_LABEL = "com.docker.compose.project.working_dir"

T = TypeVar("T")


def docker_client() -> DockerClient:
    """Returns the host's docker client.

    Raises:
        ContainerRuntimeError: If the docker daemon is not reachable.
    """
    try:
        client = from_env()
        client.ping()
    except DockerException as error:
        raise ContainerRuntimeError(f"Cannot access Docker daemon: {error}") from error
    return client


class DockerContainerRuntime(ContainerRuntime):
    def __init__(self, client: Optional[DockerClient] = None) -> None:
        self.client: DockerClient = client if client is not None else docker_client()

    def list_running(self, label_filter: str) -> List[str]:
        containers = self._call(
            f"list containers with label '{label_filter}'",
            lambda: self.client.containers.list(filters={"status": "running", "label": label_filter}),
        )
        return [container.name for container in containers]

    def inspect(self, name: str) -> ContainerInfo:
        container = self._get(name)
        attrs = container.attrs

        labels = (attrs.get("Config") or {}).get("Labels") or {}
        running = bool((attrs.get("State") or {}).get("Running", False))

        return ContainerInfo(
            name=container.name,
            running=running,
            labels=dict(labels),
            compose_project=labels.get(COMPOSE_PROJECT_LABEL) or None,
            compose_service=labels.get(COMPOSE_SERVICE_LABEL) or None,
            compose_working_dir=labels.get(COMPOSE_WORKING_DIR_LABEL) or None,
        )

    def stop(self, name: str, timeout: int) -> None:
        container = self._get(name)
        self._call(f"stop container '{name}'", lambda: container.stop(timeout=timeout))

    def start(self, name: str) -> None:
        container = self._get(name)
        self._call(f"start container '{name}'", container.start)

    def pause(self, name: str) -> None:
        container = self._get(name)
        self._call(f"pause container '{name}'", container.pause)

    def unpause(self, name: str) -> None:
        container = self._get(name)
        self._call(f"unpause container '{name}'", container.unpause)

    def exec(self, name: str, command: str) -> None:
        """Runs a shell command inside the container.

        Raises:
            ContainerRuntimeError: If the command could not be run or exited with a non-zero code.
        """
        container = self._get(name)
        exit_code, output = self._call(
            f"exec in container '{name}'", lambda: container.exec_run(["sh", "-c", command])
        )

        if exit_code != 0:
            message = output.decode(errors="replace").strip() if isinstance(output, bytes) else output
            raise ContainerRuntimeError(f"Command '{command}' exited with code {exit_code} in '{name}': {message}")

    def _get(self, name: str) -> Container:
        try:
            return self.client.containers.get(name)
        except NotFound as error:
            raise ContainerNotFoundError(f"Container '{name}' does not exist.") from error
        except DockerException as error:
            raise ContainerRuntimeError(f"Failed to inspect container '{name}': {error}") from error

    def _call(self, action: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except DockerException as error:
            raise ContainerRuntimeError(f"Failed to {action}: {error}") from error
