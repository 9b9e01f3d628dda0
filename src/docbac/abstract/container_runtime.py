"""This module defines the abstract interface of a container runtime."""

from abc import ABC, abstractmethod
from typing import List

from docbac.data_structures import ContainerInfo


class ContainerRuntime(ABC):
    """Blocking container primitives. Every failure raises ContainerRuntimeError."""

    @abstractmethod
    def list_running(self, label_filter: str) -> List[str]:
        ...

    @abstractmethod
    def inspect(self, name: str) -> ContainerInfo:
        ...

    @abstractmethod
    def stop(self, name: str, timeout: int) -> None:
        ...

    @abstractmethod
    def start(self, name: str) -> None:
        ...

    @abstractmethod
    def pause(self, name: str) -> None:
        ...

    @abstractmethod
    def unpause(self, name: str) -> None:
        ...

    @abstractmethod
    def exec(self, name: str, command: str) -> None:
        ...
