#!/usr/bin/env python3

"""Backup driver: archives docker volumes and compose stacks and uploads them to the remote."""

import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from docker import DockerClient

from docbac.abstract.remote_storage import RemoteStorage
from docbac.config import Settings
from docbac.data_structures import BackupStats, VolumeDescriptor
from docbac.errors import ArchiveError, ContainerRuntimeError, DocbacError, RemoteStorageError, StateStoreError
from docbac.graceful.inspector import discover, label_filter
from docbac.graceful.orchestrator import GracefulOrchestrator
from docbac.logger import logger
from docbac.retention import select_for_deletion
from docbac.utils import copy_directory, directory_has_content, tar_directory, timestamp
from docbac.volumes import PAYLOAD_DIR_NAME, directory_names, discover_volumes, write_sidecar

VOLUMES_CLASS = "volumes"
COMPOSE_STACKS_CLASS = "compose-stacks"
BACKUP_CLASSES = (VOLUMES_CLASS, COMPOSE_STACKS_CLASS)


class BackupRunner:
    """Class which coordinates one backup cycle."""

    def __init__(
        self,
        settings: Settings,
        client: DockerClient,
        remote: RemoteStorage,
        orchestrator: GracefulOrchestrator,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Constructor.

        Args:
            settings (Settings): Runtime configuration.
            client (DockerClient): Docker client used to discover volumes.
            remote (RemoteStorage): Backup target.
            orchestrator (GracefulOrchestrator): Quiesces labeled containers around the volume backup. Only used if
                graceful backup is enabled.
            now (Callable[[], datetime], optional): Clock for archive names. Defaults to datetime.now.
        """
        self.settings = settings
        self.client = client
        self.remote = remote
        self.orchestrator = orchestrator
        self.now = now

    def run(self) -> BackupStats:
        """Executes the backup cycle.

        Backup steps:
        1) Quiesce graceful containers, copy all docker volumes, archive and upload them, restore the containers.
        2) Copy, archive and upload the compose stacks directory.
        3) If both steps succeeded: delete remote backups exceeding the retention count.

        Errors in steps 1) and 2) are logged and counted but do not stop the other step. This is so that a partial error
        does not affect the backup of working parts.

        Returns:
            BackupStats: Number of successful and failed steps, uploaded and deleted archives.
        """
        logger.info("========================================")
        logger.info("Starting backup process...")
        logger.info("========================================")

        start = time.monotonic()
        stats = BackupStats()
        date = timestamp(self.now())

        steps = ((VOLUMES_CLASS, self.backup_docker_volumes), (COMPOSE_STACKS_CLASS, self.backup_compose_stacks))
        try:
            for backup_class, step in steps:
                try:
                    uploaded = step(date)
                    if uploaded is not None:
                        stats.uploaded.append(uploaded)
                    stats.success += 1
                except (DocbacError, OSError) as error:
                    logger.error(f"Backup of {backup_class} failed: {error}")
                    stats.errors += 1

            if stats.errors == 0:
                stats.deleted = self.cleanup_old_backups()
        finally:
            self._remove_staging_directories()

        stats.duration_s = time.monotonic() - start

        logger.info("========================================")
        if stats.errors == 0:
            logger.info(f"Backup completed successfully in {stats.duration_s:.0f} seconds")
        else:
            logger.warning(f"Backup completed with errors in {stats.duration_s:.0f} seconds")
        logger.info(f"{stats.success} successful, {stats.errors} errors")
        logger.info("========================================")

        return stats

    def backup_docker_volumes(self, date: str) -> Optional[str]:
        """Backs up all docker volumes into one archive of the 'volumes' class.

        Each volume ends up in its own directory named after the volume's meaningful name, holding the volume content
        ('data') and the volume's descriptor ('volume.json') which is needed for restoring it under its original name.

        Returns:
            Optional[str]: Remote path of the uploaded archive or None if there was nothing to back up.
        """
        logger.info("Starting Docker volumes backup...")
        staging_dir = self._reset_directory(self.settings.work_dir.joinpath(VOLUMES_CLASS))

        self._prepare_graceful_containers()
        try:
            volumes = discover_volumes(self.client)

            if not volumes:
                logger.info("No Docker volumes found")
                return None

            logger.info(f"Found Docker volumes: {' '.join(volume.volume_id for volume in volumes)}")

            names = directory_names(volumes)
            for volume in volumes:
                self._copy_volume(volume, staging_dir.joinpath(names[volume.volume_id]))

            return self._create_backup(VOLUMES_CLASS, staging_dir, date)
        finally:
            self._resume_graceful_containers()

    def backup_compose_stacks(self, date: str) -> Optional[str]:
        logger.info("Starting compose stacks backup...")

        source = self.settings.compose_stacks_dir
        if not source.is_dir():
            logger.warning(f"Compose stacks directory not found: {source}")
            return None

        staging_dir = self._reset_directory(self.settings.work_dir.joinpath(COMPOSE_STACKS_CLASS))

        logger.info(f"Copying compose stacks from: {source}")
        copy_directory(source, staging_dir)
        logger.info("Successfully copied compose stacks")

        return self._create_backup(COMPOSE_STACKS_CLASS, staging_dir, date)

    def cleanup_old_backups(self) -> List[str]:
        """Deletes remote backups of each backup class exceeding the configured number of backups to keep.

        Only archives created by this tool ('<prefix>_<class>_...') are considered. Failures are logged as warnings.

        Returns:
            List[str]: Names of the deleted archives.
        """
        logger.info(f"Cleaning up old backups (keeping last {self.settings.max_backups})...")
        deleted: List[str] = []

        for backup_class in BACKUP_CLASSES:
            logger.info(f"Cleaning up old {backup_class} backups...")
            try:
                if not self.remote.exists(backup_class):
                    logger.info(f"Backup directory for {backup_class} does not exist yet, skipping cleanup")
                    continue
                candidates = self.remote.list(backup_class)
            except RemoteStorageError as error:
                logger.warning(f"Unable to list {backup_class} backups: {error}")
                continue

            prefix = self.archive_prefix(backup_class)
            outdated = select_for_deletion(
                [candidate for candidate in candidates if candidate.path.startswith(prefix)],
                self.settings.max_backups,
            )
            if not outdated:
                logger.info(f"No old backups to clean up for {backup_class}")
                continue

            for path in outdated:
                logger.info(f"Deleting old backup: {path}")
                try:
                    self.remote.delete(path, backup_class)
                    deleted.append(path)
                except RemoteStorageError as error:
                    logger.warning(f"Failed to delete {path}: {error}")

        return deleted

    def archive_prefix(self, backup_class: str) -> str:
        return f"{self.settings.backup_prefix}_{backup_class}_"

    def _prepare_graceful_containers(self) -> None:
        if not self.settings.enable_graceful_backup:
            logger.info("Graceful backup is disabled")
            return

        logger.info("Preparing containers for graceful backup...")
        try:
            containers = discover(self.orchestrator.runtime, self.settings.graceful_label)
            if not containers:
                marker = label_filter(self.settings.graceful_label)
                logger.info(f"No containers found with graceful backup label: {marker}")

            result = self.orchestrator.prepare(containers, self.settings.graceful_stop_timeout)
        except (ContainerRuntimeError, StateStoreError) as error:
            logger.error(f"Graceful preparation failed, continuing with backup: {error}")
            return

        if result.failed_containers:
            logger.warning("Some containers failed graceful preparation, continuing with backup")

    def _resume_graceful_containers(self) -> None:
        if not self.settings.enable_graceful_backup:
            return

        logger.info("Restoring containers after graceful backup...")
        try:
            result = self.orchestrator.resume()
        except StateStoreError as error:
            logger.error(f"Failed to restore graceful containers: {error}")
            return

        if result.failed_containers:
            logger.warning("Some containers failed to restart after backup")

    def _copy_volume(self, volume: VolumeDescriptor, target: Path) -> bool:
        source = self.settings.docker_volumes_dir.joinpath(volume.volume_id, "_data")
        if not source.is_dir():
            logger.warning(f"Volume path not found: {source}")
            return False

        logger.info(f"Backing up Docker volume: {volume.volume_id} as {target.name}")
        try:
            target.mkdir(parents=True, exist_ok=True)
            copy_directory(source, target.joinpath(PAYLOAD_DIR_NAME))
            write_sidecar(volume, target)
        except OSError as error:
            logger.warning(f"Could not backup volume {volume.volume_id} (may be in use): {error}")
            shutil.rmtree(target, ignore_errors=True)
            return False

        logger.info(f"Successfully backed up volume: {volume.volume_id}")
        return True

    def _create_backup(self, backup_class: str, source_dir: Path, date: str) -> Optional[str]:
        if not directory_has_content(source_dir):
            logger.warning(f"No data found in {source_dir}, skipping {backup_class} backup")
            return None

        archive_name = f"{self.archive_prefix(backup_class)}{date}"
        logger.info(f"Creating {backup_class} backup: {archive_name}.tar.gz")

        try:
            archive = tar_directory(source_dir, archive_name, self.settings.work_dir)
        except NotADirectoryError as error:
            raise ArchiveError(str(error)) from error

        try:
            logger.info(f"Uploading {archive.name}...")
            uploaded = self.remote.upload(archive, backup_class)
            logger.info(f"Successfully uploaded {archive.name}")
        finally:
            archive.unlink(missing_ok=True)

        return uploaded

    def _reset_directory(self, directory: Path) -> Path:
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True)
        return directory

    def _remove_staging_directories(self) -> None:
        logger.info("Cleaning up temporary directories...")
        for backup_class in BACKUP_CLASSES:
            directory = self.settings.work_dir.joinpath(backup_class)
            if not directory.exists():
                continue
            try:
                shutil.rmtree(directory)
            except OSError as error:
                logger.warning(f"Could not remove {backup_class} backup directory: {error}")
