#!/usr/bin/env python3

"""Compose-level service control through the docker compose CLI."""

from pathlib import Path
from subprocess import CompletedProcess, run
from typing import Optional, Sequence

from docbac.abstract.compose_controller import ComposeController
from docbac.errors import ComposeError
from docbac.logger import logger

DOCKER_COMPOSE = ("docker", "compose")


class DockerComposeController(ComposeController):
    def __init__(self, command: Sequence[str] = DOCKER_COMPOSE) -> None:
        self.command = tuple(command)

    def stop_service(self, project: str, service: str, working_dir: Optional[str] = None) -> None:
        self._run("stop", project, service, working_dir)

    def start_service(self, project: str, service: str, working_dir: Optional[str] = None) -> None:
        self._run("start", project, service, working_dir)

    def _run(self, action: str, project: str, service: str, working_dir: Optional[str]) -> None:
        """Runs 'docker compose -p <project> <action> <service>'.

        The command runs from the project's working directory if it exists on this host, so that compose picks up the
        project's files and .env. Otherwise it relies on the project name alone.

        Raises:
            ComposeError: If the command cannot be run or returns an error.
        """
        cwd = None
        if working_dir and Path(working_dir).is_dir():
            cwd = working_dir
        elif working_dir:
            logger.debug(f"Compose working directory '{working_dir}' not found, using project name only.")

        args = (*self.command, "-p", project, action, service)

        try:
            result: CompletedProcess = run(args, cwd=cwd, capture_output=True, text=True)
        except OSError as error:
            raise ComposeError(f"Failed to call docker compose {action}: {error}") from error

        if result.returncode != 0:
            raise ComposeError(f"Failed to call docker compose {action} for '{project}/{service}': '{result.stderr}'.")
