#!/usr/bin/env python3

"""Remote backup storage through the rclone CLI."""

from datetime import datetime
from pathlib import Path
from subprocess import CompletedProcess, run
from typing import Iterable, List, Optional, Sequence

from docbac.abstract.remote_storage import RemoteStorage
from docbac.config import Settings
from docbac.data_structures import RetentionCandidate
from docbac.errors import RemoteStorageError
from docbac.logger import logger

RCLONE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LIST_SEPARATOR = ";"


def parse_listing(output: str) -> List[RetentionCandidate]:
    """Parses the output of 'rclone lsf --format tsp --separator ;'.

    Every line holds the modification time, the size in bytes and the file name, e.g.
    '2023-12-25 12:00:00;1048576;backup_volumes_20231225_120000.tar.gz'. Lines that cannot be parsed are skipped with
    a warning.
    """
    candidates: List[RetentionCandidate] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue

        fields = line.split(LIST_SEPARATOR, 2)
        if len(fields) != 3 or not fields[2]:
            logger.warning(f"Unable to parse rclone listing line: '{line}'")
            continue

        modified, size, path = fields
        try:
            moment = datetime.strptime(modified.strip(), RCLONE_TIME_FORMAT)
            size_bytes = int(size)
        except ValueError:
            logger.warning(f"Unable to parse rclone listing line: '{line}'")
            continue

        candidates.append(RetentionCandidate(path=path, timestamp=moment, size=size_bytes))

    return candidates


class RcloneRemote(RemoteStorage):
    """Stores backups under '<remote>:<base_path>[/<server_name>]/<backup_class>/'."""

    def __init__(self, remote_name: str, base_path: str, server_name: Optional[str] = None, binary: str = "rclone"):
        self.remote_name = remote_name
        self.base_path = base_path.strip("/")
        self.server_name = server_name
        self.binary = binary

    @classmethod
    def from_settings(cls, settings: Settings) -> "RcloneRemote":
        return cls(settings.require_remote(), settings.remote_path, settings.server_name)

    def root(self) -> str:
        path = self.base_path
        if self.server_name:
            path = f"{path}/{self.server_name}"
        return f"{self.remote_name}:{path}"

    def class_path(self, backup_class: str) -> str:
        return f"{self.root()}/{backup_class}/"

    def check_connection(self) -> None:
        self._rclone(("lsd", f"{self.remote_name}:"), f"Cannot connect to remote: {self.remote_name}")

    def ensure_directories(self, backup_classes: Iterable[str]) -> None:
        self._rclone(("mkdir", self.root()), f"Unable to create '{self.root()}'")
        for backup_class in backup_classes:
            path = self.class_path(backup_class)
            self._rclone(("mkdir", path), f"Unable to create '{path}'")

    def exists(self, backup_class: str) -> bool:
        result = self._run(("lsd", self.class_path(backup_class)))
        return result.returncode == 0

    def upload(self, file: Path, backup_class: str) -> str:
        target = self.class_path(backup_class)
        self._rclone(("copy", str(file), target), f"Failed to upload '{file.name}' to '{target}'")
        return f"{target}{file.name}"

    def list(self, backup_class: str) -> List[RetentionCandidate]:
        result = self._rclone(
            ("lsf", self.class_path(backup_class), "--files-only", "--format", "tsp", "--separator", LIST_SEPARATOR),
            f"Failed to list '{self.class_path(backup_class)}'",
        )
        return parse_listing(result.stdout)

    def delete(self, path: str, backup_class: str) -> None:
        target = f"{self.class_path(backup_class)}{path}"
        self._rclone(("deletefile", target), f"Failed to delete '{target}'")

    def download(self, name: str, backup_class: str, destination: Path) -> Path:
        source = f"{self.class_path(backup_class)}{name}"
        destination.mkdir(parents=True, exist_ok=True)
        self._rclone(("copy", source, str(destination)), f"Failed to download '{source}'")

        downloaded = destination.joinpath(name)
        if not downloaded.is_file():
            raise RemoteStorageError(f"Backup '{name}' not found in '{self.class_path(backup_class)}'.")
        return downloaded

    def _run(self, args: Sequence[str]) -> CompletedProcess:
        try:
            return run((self.binary, *args), capture_output=True, text=True)
        except OSError as error:
            raise RemoteStorageError(f"Failed to run {self.binary}: {error}") from error

    def _rclone(self, args: Sequence[str], message: str) -> CompletedProcess:
        result = self._run(args)
        if result.returncode != 0:
            raise RemoteStorageError(f"{message}: '{result.stderr.strip()}'.")
        return result
