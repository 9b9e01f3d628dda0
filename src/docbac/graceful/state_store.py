#!/usr/bin/env python3

"""File based quiesce state store."""

import json
import os
import tempfile
from pathlib import Path
from typing import List, Sequence

from pydantic import ValidationError

from docbac.abstract.state_store import StateStore
from docbac.data_structures import QuiesceRecord
from docbac.errors import StateStoreError
from docbac.logger import logger

STATE_FORMAT_VERSION = 1


class JsonFileStateStore(StateStore):
    """Keeps the quiesce records of one backup cycle in a JSON file.

    The file must live on persistent storage: it is written by one invocation ('stop') and consumed by another
    ('start'), possibly after the first one crashed.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def record(self, entries: Sequence[QuiesceRecord]) -> None:
        """Atomically replaces the store content.

        The entries are written to a temporary file in the store's directory which then replaces the store file, so a
        reader sees either the previous or the new content.

        Raises:
            StateStoreError: If the file cannot be written.
        """
        content = {
            "version": STATE_FORMAT_VERSION,
            "records": [entry.model_dump(mode="json") for entry in entries],
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        except OSError as error:
            raise StateStoreError(f"Unable to write state file '{self.path}': {error}") from error

        try:
            with os.fdopen(fd, "w") as file:
                json.dump(content, file, indent=2)
                file.flush()
                os.fsync(file.fileno())
            os.replace(tmp_name, self.path)
        except OSError as error:
            Path(tmp_name).unlink(missing_ok=True)
            raise StateStoreError(f"Unable to write state file '{self.path}': {error}") from error

        logger.debug(f"Stored {len(entries)} graceful container state(s) in '{self.path}'.")

    def load(self) -> List[QuiesceRecord]:
        """Returns the stored records in order.

        Raises:
            StateStoreError: If the file exists but cannot be read or parsed.
        """
        if not self.path.is_file():
            return []

        try:
            with open(self.path, "r") as file:
                content = json.load(file)
        except (OSError, json.JSONDecodeError) as error:
            raise StateStoreError(f"Unable to read state file '{self.path}': {error}") from error

        if not isinstance(content, dict) or content.get("version") != STATE_FORMAT_VERSION:
            raise StateStoreError(f"Unsupported state file format in '{self.path}'.")

        try:
            return [QuiesceRecord.model_validate(entry) for entry in content.get("records", [])]
        except ValidationError as error:
            raise StateStoreError(f"Invalid record in state file '{self.path}': {error}") from error

    def clear(self) -> None:
        """Removes the state file.

        Raises:
            StateStoreError: If the file exists but cannot be removed.
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as error:
            raise StateStoreError(f"Unable to remove state file '{self.path}': {error}") from error
