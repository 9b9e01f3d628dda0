#!/usr/bin/env python3

"""Restores volume and compose stack backups from the remote."""

import shutil
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from docker import DockerClient
from docker.errors import DockerException, NotFound

from docbac.abstract.remote_storage import RemoteStorage
from docbac.backup import BACKUP_CLASSES, COMPOSE_STACKS_CLASS, VOLUMES_CLASS
from docbac.config import Settings
from docbac.data_structures import RetentionCandidate
from docbac.errors import ArchiveError, ConfigurationError, ContainerRuntimeError
from docbac.logger import logger
from docbac.utils import copy_directory, extract_archive, format_bytes
from docbac.volumes import PAYLOAD_DIR_NAME, read_sidecar

HELPER_IMAGE = "alpine:3.18"
FILL_VOLUME_COMMAND = "find /target -mindepth 1 -delete && cp -a /source/. /target/"


def ask_confirmation(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class Restorer:
    def __init__(
        self,
        settings: Settings,
        client: Optional[DockerClient],
        remote: RemoteStorage,
        confirm: Callable[[str], bool] = ask_confirmation,
        helper_image: str = HELPER_IMAGE,
    ) -> None:
        self.settings = settings
        self.client = client
        self.remote = remote
        self.confirm = confirm
        self.helper_image = helper_image

    def list_backups(self, backup_class: str) -> List[RetentionCandidate]:
        """Returns the backups of the specified class, newest first, and logs them."""
        _check_backup_class(backup_class)

        backups = sorted(self.remote.list(backup_class), key=lambda backup: backup.timestamp, reverse=True)

        logger.info(f"Available {backup_class} backups:")
        for backup in backups:
            if backup.size is None:
                logger.info(f"  {backup.timestamp:%Y-%m-%d %H:%M:%S}  {backup.path}")
            else:
                logger.info(f"  {backup.timestamp:%Y-%m-%d %H:%M:%S}  {format_bytes(backup.size):>8}  {backup.path}")

        return backups

    def restore_volumes(self, archive_name: str) -> Tuple[List[str], List[str]]:
        """Restores every volume contained in the specified archive.

        The target volume is taken from the descriptor stored next to each volume's data, so volumes are restored under
        their original names. Directories without descriptor are restored into a volume named like the directory.
        Missing volumes are created.

        Returns:
            Tuple[List[str], List[str]]: Names of restored and of failed volumes.
        """
        logger.info(f"Restoring volumes from: {archive_name}")
        extract_dir = self.settings.work_dir.joinpath("restore_volumes")
        restored: List[str] = []
        failed: List[str] = []

        archive = self._download_and_extract(archive_name, VOLUMES_CLASS, extract_dir)
        try:
            for entry in sorted(path for path in extract_dir.iterdir() if path.is_dir()):
                descriptor = read_sidecar(entry)
                volume_name = descriptor.volume_id if descriptor is not None else entry.name

                payload = entry.joinpath(PAYLOAD_DIR_NAME)
                source = payload if descriptor is not None and payload.is_dir() else entry

                logger.info(f"Restoring volume: {volume_name}")
                try:
                    self._fill_volume(volume_name, source)
                except ContainerRuntimeError as error:
                    logger.error(f"Failed to restore volume {volume_name}: {error}")
                    failed.append(volume_name)
                    continue

                logger.info(f"Restored volume: {volume_name}")
                restored.append(volume_name)
        finally:
            shutil.rmtree(extract_dir, ignore_errors=True)
            archive.unlink(missing_ok=True)

        logger.info("Volume restore completed")
        return restored, failed

    def restore_compose_stacks(self, archive_name: str, assume_yes: bool = False) -> bool:
        """Restores the compose stacks directory. Existing files are overwritten, so the user is asked first.

        Returns:
            bool: False if the user cancelled the restore.
        """
        target = self.settings.compose_stacks_dir
        logger.info(f"Restoring compose stacks from: {archive_name}")
        logger.warning(f"This will overwrite existing files in {target}")

        if not assume_yes and not self.confirm("Are you sure you want to continue? (y/N): "):
            logger.info("Restore cancelled")
            return False

        extract_dir = self.settings.work_dir.joinpath("restore_compose")
        archive = self._download_and_extract(archive_name, COMPOSE_STACKS_CLASS, extract_dir)
        try:
            logger.info(f"Restoring compose stacks to: {target}")
            target.mkdir(parents=True, exist_ok=True)
            copy_directory(extract_dir, target)
        finally:
            shutil.rmtree(extract_dir, ignore_errors=True)
            archive.unlink(missing_ok=True)

        logger.info("Compose stacks restore completed")
        return True

    def _download_and_extract(self, archive_name: str, backup_class: str, extract_dir: Path) -> Path:
        if extract_dir.exists():
            shutil.rmtree(extract_dir)

        logger.info("Downloading backup file...")
        archive = self.remote.download(archive_name, backup_class, self.settings.work_dir)

        logger.info("Extracting backup...")
        try:
            extract_archive(archive, extract_dir)
        except (ArchiveError, FileNotFoundError):
            archive.unlink(missing_ok=True)
            raise

        return archive

    def _fill_volume(self, volume_name: str, source: Path) -> None:
        if self.client is None:
            raise ContainerRuntimeError("Restoring volumes requires access to the docker daemon.")

        try:
            try:
                self.client.volumes.get(volume_name)
            except NotFound:
                self.client.volumes.create(name=volume_name)

            self.client.containers.run(
                self.helper_image,
                ["sh", "-c", FILL_VOLUME_COMMAND],
                volumes={
                    volume_name: {"bind": "/target", "mode": "rw"},
                    str(source.absolute()): {"bind": "/source", "mode": "ro"},
                },
                remove=True,
            )
        except DockerException as error:
            raise ContainerRuntimeError(str(error)) from error


def _check_backup_class(backup_class: str) -> None:
    if backup_class not in BACKUP_CLASSES:
        raise ConfigurationError(f"Unknown backup class '{backup_class}', expected one of {list(BACKUP_CLASSES)}.")
