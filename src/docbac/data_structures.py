#!/usr/bin/env python3

"""Module that provides data structures needed throughout the project."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuiesceMethod(str, Enum):
    STOP = "stop"
    PAUSE = "pause"
    COMMAND = "command"


class ComposeAssociation(BaseModel):
    model_config = ConfigDict(frozen=True)

    project: str
    service: str
    working_dir: Optional[str] = None


@dataclass(frozen=True)
class ContainerRecord:
    name: str
    is_running: bool
    compose: Optional[ComposeAssociation] = None
    labels: Dict[str, str] = field(default_factory=dict)  # full label set as reported by the runtime


class QuiescePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: QuiesceMethod = QuiesceMethod.STOP
    pre_command: Optional[str] = None
    post_command: Optional[str] = None
    timeout_seconds: int = Field(gt=0)


class QuiesceRecord(BaseModel):
    """Persisted state of one quiesced container, written by prepare and consumed by resume."""

    model_config = ConfigDict(frozen=True)

    container_name: str
    policy: QuiescePolicy
    was_running: bool
    compose: Optional[ComposeAssociation] = None


class VolumeDescriptor(BaseModel):
    volume_id: str
    meaningful_name: str = ""
    project: Optional[str] = None
    service: Optional[str] = None
    volume_label: Optional[str] = None  # value of 'com.docker.compose.volume'
    attached_containers: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    labels: Dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class RetentionCandidate:
    path: str
    timestamp: datetime
    size: Optional[int] = None  # bytes, if reported by the remote


@dataclass
class PrepareResult:
    prepared_count: int = 0
    failed_containers: List[str] = field(default_factory=list)


@dataclass
class ResumeResult:
    restored_count: int = 0
    failed_containers: List[str] = field(default_factory=list)


@dataclass
class BackupStats:
    success: int = 0
    errors: int = 0
    uploaded: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    duration_s: float = 0.0


@dataclass(frozen=True)
class ContainerInfo:
    """Raw inspection result as returned by a container runtime."""

    name: str
    running: bool
    labels: Dict[str, str] = field(default_factory=dict)
    compose_project: Optional[str] = None
    compose_service: Optional[str] = None
    compose_working_dir: Optional[str] = None
