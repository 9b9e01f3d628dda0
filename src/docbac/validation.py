#!/usr/bin/env python3

"""Checks the configuration and the environment before backups are run."""

from typing import Callable, Optional

from docker import DockerClient
from docker.errors import DockerException

from docbac.abstract.remote_storage import RemoteStorage
from docbac.backup import BACKUP_CLASSES
from docbac.config import Settings
from docbac.docker.runtime import DockerContainerRuntime, docker_client
from docbac.errors import ConfigurationError, ContainerRuntimeError, RemoteStorageError
from docbac.graceful.inspector import label_filter
from docbac.logger import logger
from docbac.remote.rclone import RcloneRemote


def validate_environment(settings: Settings) -> bool:
    logger.info("Validating environment variables...")
    try:
        settings.require_remote()
    except ConfigurationError as error:
        logger.error(str(error))
        return False

    logger.info("All required environment variables are set")
    logger.info(f"MAX_BACKUPS is valid: {settings.max_backups}")

    if settings.validate_schedule():
        logger.info(f"BACKUP_SCHEDULE format looks valid: {settings.backup_schedule}")

    return True


def validate_docker(settings: Settings, client_factory: Callable[[], DockerClient]) -> Optional[DockerClient]:
    """Returns a working docker client or None if docker or its volumes directory are not accessible."""
    logger.info("Validating Docker access...")
    try:
        client = client_factory()
    except ContainerRuntimeError as error:
        logger.error(f"{error}")
        logger.error("Please ensure Docker socket is mounted: /var/run/docker.sock:/var/run/docker.sock:ro")
        return None

    logger.info("Docker daemon access successful")

    if not settings.docker_volumes_dir.is_dir():
        logger.error(f"Docker volumes directory not accessible: {settings.docker_volumes_dir}")
        return None

    logger.info("Docker volumes directory accessible")

    try:
        volumes = client.volumes.list()
    except DockerException as error:
        logger.error(f"Unable to list Docker volumes: {error}")
        return None

    if volumes:
        logger.info(f"Found {len(volumes)} Docker volumes")
    else:
        logger.warning("No Docker volumes found on the system")

    return client


def validate_remote(remote: RemoteStorage) -> bool:
    logger.info("Validating rclone configuration...")
    try:
        remote.check_connection()
        logger.info("Remote connection successful")
        remote.ensure_directories(BACKUP_CLASSES)
    except RemoteStorageError as error:
        logger.error(f"{error}")
        logger.error("Please check your rclone configuration")
        return False

    logger.info("Remote backup directories created")
    return True


def validate_graceful_backup(settings: Settings, client: DockerClient) -> None:
    logger.info("Validating graceful backup configuration...")

    if not settings.enable_graceful_backup:
        logger.info("Graceful backup is disabled")
        return

    try:
        containers = DockerContainerRuntime(client).list_running(label_filter(settings.graceful_label))
    except ContainerRuntimeError as error:
        logger.warning(f"Unable to list graceful containers: {error}")
        return

    if containers:
        logger.info(f"Found containers with graceful backup enabled: {' '.join(containers)}")
    else:
        logger.info(f"No containers found with graceful backup label: {label_filter(settings.graceful_label)}")


def validate_compose_stacks_dir(settings: Settings) -> bool:
    directory = settings.compose_stacks_dir
    if not directory.is_dir():
        logger.warning(f"Compose stacks directory does not exist: {directory}")
        return False

    logger.info(f"Compose stacks directory is valid: {directory}")
    return True


def run_validation(
    settings: Settings,
    client_factory: Callable[[], DockerClient] = docker_client,
    remote_factory: Callable[[Settings], RemoteStorage] = RcloneRemote.from_settings,
) -> bool:
    """Runs all checks. Graceful backup and the compose stacks directory are only reported, never fail the validation.

    Returns:
        bool: Whether the backup system is ready to use.
    """
    logger.info("=== Configuration Summary ===")
    for key, value in settings.summary().items():
        logger.info(f"{key}: {value}")
    logger.info("============================")

    passed = validate_environment(settings)

    client = validate_docker(settings, client_factory)
    if client is None:
        passed = False
    else:
        validate_graceful_backup(settings, client)

    if settings.remote_name:
        passed = validate_remote(remote_factory(settings)) and passed

    validate_compose_stacks_dir(settings)

    if passed:
        logger.info("Configuration validation PASSED")
    else:
        logger.error("Configuration validation FAILED")

    return passed
