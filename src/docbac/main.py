#!/usr/bin/env python3

"""Main docbac module, containing the CLI entry points."""

import json
import sys
from argparse import ArgumentParser, Namespace
from typing import Callable, Dict, List, Optional

from docbac.abstract.container_runtime import ContainerRuntime
from docbac.backup import BACKUP_CLASSES, VOLUMES_CLASS, BackupRunner
from docbac.config import Settings
from docbac.docker.compose import DockerComposeController
from docbac.docker.runtime import DockerContainerRuntime, docker_client
from docbac.errors import DocbacError
from docbac.graceful.inspector import discover, label_filter
from docbac.graceful.orchestrator import GracefulOrchestrator, describe
from docbac.graceful.state_store import JsonFileStateStore
from docbac.logger import configure_logging, logger
from docbac.remote.rclone import RcloneRemote
from docbac.restore import Restorer
from docbac.validation import run_validation
from docbac.volumes import discover_volumes, get_volume, summary_line

RUN_TYPES = {"backup": "backup", "restore": "restore", "volumes": "backup", "validate": "validation"}


def parse_args_graceful(argv: Optional[List[str]] = None) -> str:
    """Parses CLI parameters of the graceful backup command.

    Returns:
        str: Action to run: 'stop', 'start' or 'list'.
    """
    parser = ArgumentParser(prog="docbac-graceful", description="Quiesce and restore containers around a backup.")
    parser.add_argument(
        "action",
        choices=["stop", "start", "list"],
        help="stop: prepare containers for backup, start: restore containers after backup, "
        "list: list containers with graceful backup enabled.",
    )

    return parser.parse_args(argv).action


def parse_args(argv: Optional[List[str]] = None) -> Namespace:
    parser = ArgumentParser(prog="docbac", description="Backup docker volumes and compose stacks to an rclone remote.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("backup", help="Run a full backup cycle.")

    restore = commands.add_parser("restore", help="List or restore backups.")
    restore.add_argument("backup_class", choices=BACKUP_CLASSES, help="Backup class to list or restore.")
    restore.add_argument("archive", nargs="?", help="Archive to restore. Lists available archives if omitted.")
    restore.add_argument("-y", "--yes", action="store_true", help="Do not ask before overwriting compose stacks.")

    volumes = commands.add_parser("volumes", help="Show docker volumes with their backup names.")
    volumes.add_argument(
        "format",
        nargs="?",
        choices=["list", "json", "volume"],
        default="list",
        help="Output format. 'volume' shows the details of a single volume.",
    )
    volumes.add_argument("name", nargs="?", help="Volume to show, required for the 'volume' format.")

    commands.add_parser("validate", help="Validate configuration, docker and remote access.")

    args = parser.parse_args(argv)
    if args.command == "volumes" and args.format == "volume" and not args.name:
        volumes.error("the 'volume' format requires a volume name")

    return args


def build_orchestrator(settings: Settings, runtime: ContainerRuntime) -> GracefulOrchestrator:
    return GracefulOrchestrator(
        runtime=runtime,
        compose=DockerComposeController(),
        store=JsonFileStateStore(settings.state_file),
    )


def run_graceful(
    action: str, settings: Settings, runtime: ContainerRuntime, orchestrator: GracefulOrchestrator
) -> None:
    """Runs a graceful backup action.

    Partial failures are logged only. Failing to persist or read the container state raises StateStoreError.
    """
    if action == "start":
        orchestrator.resume()
        return

    containers = discover(runtime, settings.graceful_label)

    if not containers:
        logger.info(f"No containers found with graceful backup label: {label_filter(settings.graceful_label)}")
        if action == "list":
            return
    elif action == "list":
        logger.info("Containers with graceful backup enabled:")
        for name, method, running in describe(containers, settings.graceful_stop_timeout):
            logger.info(f"  - {name} (method: {method.value}, running: {str(running).lower()})")
        return
    else:
        logger.info(f"Found containers requiring graceful backup: {' '.join(c.name for c in containers)}")

    orchestrator.prepare(containers, settings.graceful_stop_timeout)


def main_graceful(argv: Optional[List[str]] = None) -> None:
    """Graceful backup CLI entry point."""
    action = parse_args_graceful(argv)

    try:
        settings = Settings.load()
        configure_logging(settings.log_dir, "graceful", settings.log_level)

        if action != "list" and not settings.enable_graceful_backup:
            logger.info("Graceful backup is disabled")
        else:
            runtime = DockerContainerRuntime()
            run_graceful(action, settings, runtime, build_orchestrator(settings, runtime))
    except DocbacError as error:
        logger.error(f"Exited with an error: {error}.")
        sys.exit(1)
    logger.info("Exited with success.")
    sys.exit(0)


def _backup(args: Namespace, settings: Settings) -> bool:
    remote = RcloneRemote.from_settings(settings)
    client = docker_client()
    runtime = DockerContainerRuntime(client)

    runner = BackupRunner(settings, client, remote, build_orchestrator(settings, runtime))
    stats = runner.run()

    return stats.errors == 0


def _restore(args: Namespace, settings: Settings) -> bool:
    remote = RcloneRemote.from_settings(settings)
    client = docker_client() if args.archive and args.backup_class == VOLUMES_CLASS else None
    restorer = Restorer(settings, client, remote)

    if not args.archive:
        restorer.list_backups(args.backup_class)
        return True

    if args.backup_class == VOLUMES_CLASS:
        _, failed = restorer.restore_volumes(args.archive)
        return not failed

    restorer.restore_compose_stacks(args.archive, assume_yes=args.yes)
    return True


def _volumes(args: Namespace, settings: Settings) -> bool:
    if args.format == "volume":
        volume = get_volume(docker_client(), args.name)
        print(json.dumps(volume.model_dump(mode="json"), indent=2))
        return True

    volumes = discover_volumes(docker_client())

    if args.format == "json":
        print(json.dumps([volume.model_dump(mode="json") for volume in volumes], indent=2))
    else:
        for volume in volumes:
            print(summary_line(volume))

    return True


def _validate(args: Namespace, settings: Settings) -> bool:
    return run_validation(settings, client_factory=docker_client, remote_factory=RcloneRemote.from_settings)


COMMANDS: Dict[str, Callable[[Namespace, Settings], bool]] = {
    "backup": _backup,
    "restore": _restore,
    "volumes": _volumes,
    "validate": _validate,
}


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)

    try:
        settings = Settings.load()
        configure_logging(settings.log_dir, RUN_TYPES[args.command], settings.log_level)
        success = COMMANDS[args.command](args, settings)
    except (DocbacError, OSError) as error:
        logger.error(f"Exited with an error: {error}.")
        sys.exit(1)

    if not success:
        logger.error("Exited with an error.")
        sys.exit(1)
    logger.info("Exited with success.")
    sys.exit(0)
