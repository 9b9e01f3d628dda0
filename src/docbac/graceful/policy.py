#!/usr/bin/env python3

"""Derives the quiesce policy of a container from its labels."""

from typing import Optional

from docbac.data_structures import ContainerRecord, QuiesceMethod, QuiescePolicy
from docbac.logger import logger

METHOD_LABEL = "backup.graceful.method"
PRE_COMMAND_LABEL = "backup.graceful.pre-command"
POST_COMMAND_LABEL = "backup.graceful.post-command"
TIMEOUT_LABEL = "backup.graceful.timeout"

_METHODS = {method.value: method for method in QuiesceMethod}


def resolve(record: ContainerRecord, default_timeout: int) -> QuiescePolicy:
    """Resolves the quiesce policy of a container.

    Unknown or missing methods resolve to 'stop'. Empty commands count as absent. The timeout label overrides the
    process-wide default if it holds a positive integer.

    Args:
        record (ContainerRecord): Discovered container.
        default_timeout (int): Process-wide stop timeout in seconds.

    Returns:
        QuiescePolicy: Immutable policy.
    """
    labels = record.labels

    return QuiescePolicy(
        method=_parse_method(record.name, labels.get(METHOD_LABEL)),
        pre_command=_optional_command(labels.get(PRE_COMMAND_LABEL)),
        post_command=_optional_command(labels.get(POST_COMMAND_LABEL)),
        timeout_seconds=_parse_timeout(record.name, labels.get(TIMEOUT_LABEL), default_timeout),
    )


def _parse_method(container_name: str, value: Optional[str]) -> QuiesceMethod:
    if value is None:
        return QuiesceMethod.STOP

    method = _METHODS.get(value)
    if method is None:
        logger.warning(f"Unknown graceful backup method '{value}' for {container_name}, using stop")
        return QuiesceMethod.STOP

    return method


def _optional_command(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    return value


def _parse_timeout(container_name: str, value: Optional[str], default_timeout: int) -> int:
    if value is None or value.strip() == "":
        return default_timeout

    try:
        timeout = int(value)
    except ValueError:
        timeout = 0

    if timeout < 1:
        logger.warning(f"Invalid graceful backup timeout '{value}' for {container_name}, using {default_timeout}s")
        return default_timeout

    return timeout
