from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List

from docbac.data_structures import RetentionCandidate


class RemoteStorage(ABC):
    @abstractmethod
    def check_connection(self) -> None:
        ...

    @abstractmethod
    def ensure_directories(self, backup_classes: Iterable[str]) -> None:
        ...

    @abstractmethod
    def exists(self, backup_class: str) -> bool:
        ...

    @abstractmethod
    def upload(self, file: Path, backup_class: str) -> str:
        ...

    @abstractmethod
    def list(self, backup_class: str) -> List[RetentionCandidate]:
        ...

    @abstractmethod
    def delete(self, path: str, backup_class: str) -> None:
        ...

    @abstractmethod
    def download(self, name: str, backup_class: str, destination: Path) -> Path:
        ...
