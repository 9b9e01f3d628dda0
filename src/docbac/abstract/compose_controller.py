from abc import ABC, abstractmethod
from typing import Optional


class ComposeController(ABC):
    @abstractmethod
    def stop_service(self, project: str, service: str, working_dir: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def start_service(self, project: str, service: str, working_dir: Optional[str] = None) -> None:
        ...
