#!/usr/bin/env python3

"""Runtime configuration, read from environment variables and an optional YAML file."""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ValidationError, field_validator

from docbac.errors import ConfigurationError
from docbac.logger import logger
from docbac.utils import load_yaml_file

CONFIG_FILE_VARIABLE = "DOCBAC_CONFIG"

# field name -> environment variable
ENVIRONMENT_VARIABLES: Dict[str, str] = {
    "server_name": "SERVER_NAME",
    "backup_schedule": "BACKUP_SCHEDULE",
    "max_backups": "MAX_BACKUPS",
    "remote_name": "GDRIVE_REMOTE_NAME",
    "remote_path": "GDRIVE_BACKUP_PATH",
    "compose_stacks_dir": "COMPOSE_STACKS_DIR",
    "backup_prefix": "BACKUP_PREFIX",
    "log_level": "LOG_LEVEL",
    "log_dir": "LOG_DIR",
    "graceful_label": "GRACEFUL_BACKUP_LABEL",
    "graceful_stop_timeout": "GRACEFUL_STOP_TIMEOUT",
    "enable_graceful_backup": "ENABLE_GRACEFUL_BACKUP",
    "state_file": "GRACEFUL_STATE_FILE",
    "docker_volumes_dir": "DOCKER_VOLUMES_DIR",
    "work_dir": "WORK_DIR",
}


class Settings(BaseModel):
    server_name: Optional[str] = None
    backup_schedule: str = "0 2 * * *"
    max_backups: int = 7
    remote_name: Optional[str] = None
    remote_path: str = "docker-backups"
    compose_stacks_dir: Path = Path("/compose-stacks")
    backup_prefix: str = "backup"
    log_level: str = "INFO"
    log_dir: Optional[Path] = Path("/logs")
    graceful_label: str = "backup.graceful"
    graceful_stop_timeout: int = 30
    enable_graceful_backup: bool = False
    state_file: Path = Path("/var/lib/docbac/graceful-state.json")
    docker_volumes_dir: Path = Path("/var/lib/docker/volumes")
    work_dir: Path = Path("/tmp/docbac")

    @field_validator("max_backups")
    @classmethod
    def _check_max_backups(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"MAX_BACKUPS must be a positive integer, got: {value}")
        return value

    @field_validator("graceful_stop_timeout")
    @classmethod
    def _check_timeout(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"GRACEFUL_STOP_TIMEOUT must be a positive integer, got: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: '{value}'")
        return value

    @field_validator("graceful_label", "backup_prefix", "remote_path")
    @classmethod
    def _check_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @classmethod
    def load(cls, environ: Optional[Mapping[str, str]] = None, config_file: Optional[Path] = None) -> "Settings":
        """Builds the settings from an optional YAML file and the environment.

        Environment variables take precedence over values of the file. Empty environment variables count as unset.
        The file is taken from 'config_file' or, if not given, from the variable DOCBAC_CONFIG. Its keys are the field
        names of this class.

        Raises:
            ConfigurationError: If the file cannot be loaded or any value is invalid.
        """
        if environ is None:
            environ = os.environ

        if config_file is None and environ.get(CONFIG_FILE_VARIABLE):
            config_file = Path(environ[CONFIG_FILE_VARIABLE])

        values: Dict[str, Any] = {}
        if config_file is not None:
            try:
                values.update(load_yaml_file(config_file))
            except FileNotFoundError as error:
                raise ConfigurationError(str(error)) from error

            unknown = set(values).difference(cls.model_fields)
            if unknown:
                raise ConfigurationError(f"Unknown configuration keys in '{config_file}': {sorted(unknown)}")

        for field_name, variable in ENVIRONMENT_VARIABLES.items():
            value = environ.get(variable)
            if value is not None and value.strip() != "":
                values[field_name] = value.strip()

        try:
            return cls.model_validate(values)
        except ValidationError as error:
            raise ConfigurationError(f"Invalid configuration: {error}") from error

    def require_remote(self) -> str:
        if not self.remote_name:
            raise ConfigurationError(f"Missing required environment variable: {ENVIRONMENT_VARIABLES['remote_name']}")
        return self.remote_name

    def validate_schedule(self) -> bool:
        """Basic check of the cron expression. Logs a warning if it does not consist of five fields."""
        if len(self.backup_schedule.split()) != 5:
            logger.warning(f"BACKUP_SCHEDULE may not be valid cron format: {self.backup_schedule}")
            return False
        return True

    def summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "Remote": self.remote_name,
            "Backup Path": self.remote_path,
            "Server Name": self.server_name,
            "Compose Stacks Dir": str(self.compose_stacks_dir),
            "Max Backups": self.max_backups,
            "Backup Schedule": self.backup_schedule,
            "Graceful Backup": self.enable_graceful_backup,
        }
        if self.enable_graceful_backup:
            summary["Graceful Label"] = self.graceful_label
            summary["Graceful Timeout"] = self.graceful_stop_timeout
        summary["Log Level"] = self.log_level
        return summary
