#!/usr/bin/env python3

"""Two-phase graceful backup: quiesce containers before a backup and restore them afterwards."""

import time
from typing import Callable, List, Sequence, Set, Tuple

from docbac.abstract.compose_controller import ComposeController
from docbac.abstract.container_runtime import ContainerRuntime
from docbac.abstract.state_store import StateStore
from docbac.data_structures import (
    ContainerRecord,
    PrepareResult,
    QuiesceMethod,
    QuiesceRecord,
    ResumeResult,
)
from docbac.errors import ComposeError, ContainerRuntimeError, StateStoreError
from docbac.graceful.policy import resolve
from docbac.logger import logger

SETTLE_DELAY_S = 2.0


class GracefulOrchestrator:
    """Drives the 'prepare' and 'resume' phases around a backup.

    Both phases work through the containers one at a time. The phases share no in-memory state; 'prepare' hands its
    records to 'resume' through the state store, so they may run in different processes.

    For containers of a compose stack using the stop method, the compose service is stopped/started first. If that is
    not applicable or fails, the container is handled directly through the runtime.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        compose: ComposeController,
        store: StateStore,
        settle_delay_s: float = SETTLE_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.runtime = runtime
        self.compose = compose
        self.store = store
        self.settle_delay_s = settle_delay_s
        self._sleep = sleep

    def prepare(self, containers: Sequence[ContainerRecord], default_timeout: int) -> PrepareResult:
        """Quiesces all specified containers.

        The records of all containers are persisted before the first container is touched. Every container gets a
        record, including the ones that fail to be quiesced, so that 'resume' attempts to restore them as well.

        Args:
            containers (Sequence[ContainerRecord]): Discovered containers in discovery order.
            default_timeout (int): Stop timeout for containers without their own timeout label.

        Raises:
            StateStoreError: If the records cannot be persisted. No container has been touched in that case.

        Returns:
            PrepareResult: Number of prepared containers and names of containers that failed.
        """
        records = self._build_records(containers, default_timeout)
        pending = self._unresumed_records(set(record.container_name for record in records))

        if not records and not pending:
            logger.info("No graceful containers to prepare.")
            return PrepareResult()

        self.store.record(pending + records)

        result = PrepareResult()
        for record in records:
            logger.info(f"Processing container: {record.container_name} (running: {str(record.was_running).lower()})")

            if self._quiesce(record):
                result.prepared_count += 1
            else:
                result.failed_containers.append(record.container_name)
                logger.error(f"Failed to prepare container {record.container_name} for backup")

        if result.failed_containers:
            logger.warning(f"Some containers failed graceful preparation: {' '.join(result.failed_containers)}")
        else:
            logger.info("All graceful containers prepared for backup")

        return result

    def resume(self) -> ResumeResult:
        """Restores all containers recorded by the last 'prepare' and clears the store.

        Without stored records this is a no-op. The store is cleared even if some containers fail, a failure to clear
        it is only logged.

        Raises:
            StateStoreError: If the stored records cannot be read.

        Returns:
            ResumeResult: Number of restored containers and names of containers that failed.
        """
        records = self.store.load()

        if not records:
            logger.info("No graceful containers state found")
            return ResumeResult()

        result = ResumeResult()
        for record in records:
            was_running = str(record.was_running).lower()
            logger.info(f"Restoring container: {record.container_name} (was_running: {was_running})")

            if self._resume(record):
                result.restored_count += 1
            else:
                result.failed_containers.append(record.container_name)
                logger.error(f"Failed to restore container {record.container_name} after backup")

        try:
            self.store.clear()
        except StateStoreError as error:
            logger.error(f"Failed to clear graceful containers state, the next backup may be affected: {error}")

        if result.failed_containers:
            logger.warning(f"Some containers failed restoration: {' '.join(result.failed_containers)}")
        else:
            logger.info("All graceful containers restored")

        return result

    def _build_records(self, containers: Sequence[ContainerRecord], default_timeout: int) -> List[QuiesceRecord]:
        records: List[QuiesceRecord] = []
        seen: Set[str] = set()

        for container in containers:
            if container.name in seen:
                logger.warning(f"Container {container.name} was discovered twice, skipping duplicate")
                continue
            seen.add(container.name)

            records.append(
                QuiesceRecord(
                    container_name=container.name,
                    policy=resolve(container, default_timeout),
                    was_running=container.is_running,
                    compose=container.compose,
                )
            )

        return records

    def _unresumed_records(self, current: Set[str]) -> List[QuiesceRecord]:
        """Returns records of an earlier run that was never resumed, except for containers handled again now."""
        try:
            previous = self.store.load()
        except StateStoreError as error:
            logger.warning(f"Ignoring unreadable graceful containers state: {error}")
            return []

        pending = [record for record in previous if record.container_name not in current]
        if pending:
            logger.warning(
                "Found containers of a previous backup that were never restored, keeping them for restoration: "
                f"{' '.join(record.container_name for record in pending)}"
            )

        return pending

    def _quiesce(self, record: QuiesceRecord) -> bool:
        if self._compose_stop(record):
            return True

        return self._direct_quiesce(record)

    def _compose_stop(self, record: QuiesceRecord) -> bool:
        if record.compose is None or record.policy.method != QuiesceMethod.STOP:
            return False

        project, service = record.compose.project, record.compose.service
        logger.info(f"Stopping compose service: {project}/{service}")
        try:
            self.compose.stop_service(project, service, record.compose.working_dir)
        except ComposeError as error:
            logger.warning(f"Failed to stop compose service, trying container stop: {error}")
            return False

        return True

    def _direct_quiesce(self, record: QuiesceRecord) -> bool:
        name, policy = record.container_name, record.policy
        logger.info(f"Executing pre-backup for container: {name} (method: {policy.method.value})")

        if policy.pre_command is not None:
            logger.info(f"Executing pre-backup command: {policy.pre_command}")
            try:
                self.runtime.exec(name, policy.pre_command)
            except ContainerRuntimeError as error:
                logger.warning(f"Pre-backup command failed for {name}: {error}")

        try:
            if policy.method == QuiesceMethod.STOP:
                logger.info(f"Stopping container: {name}")
                self.runtime.stop(name, policy.timeout_seconds)
            elif policy.method == QuiesceMethod.PAUSE:
                logger.info(f"Pausing container: {name}")
                self.runtime.pause(name)
            else:
                logger.info(f"Using custom command method for: {name}")
        except ContainerRuntimeError as error:
            logger.error(f"Failed to {policy.method.value} container {name}: {error}")
            return False

        return True

    def _resume(self, record: QuiesceRecord) -> bool:
        restored = self._compose_start(record) or self._direct_resume(record)

        post_command = record.policy.post_command
        if post_command is None:
            return restored

        if not restored:
            logger.warning(f"Skipping post-backup command for {record.container_name}: container was not restored")
            return restored

        logger.info(f"Executing post-backup command: {post_command}")
        self._sleep(self.settle_delay_s)
        try:
            self.runtime.exec(record.container_name, post_command)
        except ContainerRuntimeError as error:
            logger.warning(f"Post-backup command failed for {record.container_name}: {error}")

        return restored

    def _compose_start(self, record: QuiesceRecord) -> bool:
        if not record.was_running or record.compose is None or record.policy.method != QuiesceMethod.STOP:
            return False

        project, service = record.compose.project, record.compose.service
        logger.info(f"Starting compose service: {project}/{service}")
        try:
            self.compose.start_service(project, service, record.compose.working_dir)
        except ComposeError as error:
            logger.warning(f"Failed to start compose service, trying container start: {error}")
            return False

        return True

    def _direct_resume(self, record: QuiesceRecord) -> bool:
        name, method = record.container_name, record.policy.method
        logger.info(f"Executing post-backup for container: {name}")

        if not record.was_running:
            return True

        try:
            if method == QuiesceMethod.STOP:
                logger.info(f"Starting container: {name}")
                self.runtime.start(name)
            elif method == QuiesceMethod.PAUSE:
                logger.info(f"Unpausing container: {name}")
                self.runtime.unpause(name)
            else:
                logger.info(f"Container {name} using custom command method, no automatic restart")
        except ContainerRuntimeError as error:
            action = "start" if method == QuiesceMethod.STOP else "unpause"
            logger.error(f"Failed to {action} container {name}: {error}")
            return False

        return True


def describe(containers: Sequence[ContainerRecord], default_timeout: int) -> List[Tuple[str, QuiesceMethod, bool]]:
    """Returns name, resolved method and running state of each container. Does not touch any container."""
    return [
        (container.name, resolve(container, default_timeout).method, container.is_running) for container in containers
    ]
