#!/usr/bin/env python3

"""docbac utility functions."""

import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from yaml import YAMLError, safe_load

from docbac.errors import ArchiveError, ConfigurationError

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def timestamp(moment: Optional[datetime] = None) -> str:
    """Returns the timestamp used in archive names, e.g. '20231225_120000'."""
    if moment is None:
        moment = datetime.now()
    return moment.strftime(TIMESTAMP_FORMAT)


def format_bytes(size: Optional[int]) -> str:
    """Formats a number of bytes as human readable string, e.g. '1.5MB'. Unknown sizes are shown as 'N/A'."""
    if size is None:
        return "N/A"

    value = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if value < 1024.0:
            return f"{value:.1f}{unit}"
        value /= 1024.0
    return f"{value:.1f}PB"


def load_yaml_file(path: Path) -> Dict:
    """Loads a YAML file and returns it as a dictionary.

    Args:
        path (Path): Absolute path.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is no valid YAML mapping.

    Returns:
        Dict: Content of the file. An empty file yields an empty dictionary.
    """
    if not path.exists():
        raise FileNotFoundError(f"Unable to load YAML file '{path}': File does not exist.")

    with open(path.absolute(), "r") as file:
        try:
            content = safe_load(file)
        except YAMLError as error:
            raise ConfigurationError(f"Unable to parse YAML file '{path}': {error}") from error

    if content is None:
        return {}

    if not isinstance(content, dict):
        raise ConfigurationError(f"YAML file '{path}' must contain a mapping, got '{type(content).__name__}'.")

    return content


def directory_has_content(directory: Path) -> bool:
    return directory.is_dir() and any(directory.iterdir())


def copy_directory(source: Path, destination: Path) -> None:
    """Copies the content of 'source' into 'destination', preserving symlinks and metadata.

    Raises:
        NotADirectoryError: If 'source' is invalid.
    """
    if not source.is_dir():
        raise NotADirectoryError(f"Directory to copy does not exist: '{source}'.")

    shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)


def tar_directory(directory: Path, tar_name: str, destination: Path) -> Path:
    """Tar-compresses the content of the specified directory.

    The archive holds the directory's content relative to the directory itself ('tar -C <directory> .'), so extracting
    it recreates the content without the parent path.

    Args:
        directory (Path): The directory to tar-compress.
        tar_name (str): Target name of the tar file without suffix.
        destination (Path): Target directory for the tar file.

    Raises:
        NotADirectoryError: If 'directory' is invalid.
        NotADirectoryError: If 'destination' is invalid.
        ArchiveError: In case tar returns an error.

    Returns:
        Path: Path of the created archive.
    """
    if not directory.is_dir():
        raise NotADirectoryError(f"Directory to compress does not exist: '{directory}'.")
    if not destination.is_dir():
        raise NotADirectoryError(f"Target directory does not exist: '{destination}'.")

    tar_file_path = destination.joinpath(f"{tar_name}.tar.gz")

    cmd_args = ("tar", "-czf", str(tar_file_path.absolute()), "-C", str(directory.absolute()), ".")

    proc_return: subprocess.CompletedProcess = subprocess.run(cmd_args, capture_output=True, text=True)

    if proc_return.returncode != 0:
        raise ArchiveError(f"'tar' exited with an error: '{proc_return.stderr}'.")

    if not tar_file_path.is_file():
        raise ArchiveError(f"'tar' command failed: File '{tar_file_path}' was not found.")

    return tar_file_path


def extract_archive(archive: Path, destination: Path) -> Path:
    """Extracts a .tar.gz archive into the specified directory, creating it if necessary.

    Raises:
        FileNotFoundError: If the archive does not exist.
        ArchiveError: In case tar returns an error.
    """
    if not archive.is_file():
        raise FileNotFoundError(f"Archive to extract does not exist: '{archive}'.")

    destination.mkdir(parents=True, exist_ok=True)

    cmd_args = ("tar", "-xzf", str(archive.absolute()), "-C", str(destination.absolute()))

    proc_return: subprocess.CompletedProcess = subprocess.run(cmd_args, capture_output=True, text=True)

    if proc_return.returncode != 0:
        raise ArchiveError(f"'tar' exited with an error while extracting '{archive}': '{proc_return.stderr}'.")

    return destination
