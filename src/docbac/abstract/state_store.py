"""This module defines the abstract store which bridges the prepare and resume phases."""

from abc import ABC, abstractmethod
from typing import List, Sequence

from docbac.data_structures import QuiesceRecord


class StateStore(ABC):
    @abstractmethod
    def record(self, entries: Sequence[QuiesceRecord]) -> None:
        """Replaces the store content with the specified entries. Must be atomic."""

    @abstractmethod
    def load(self) -> List[QuiesceRecord]:
        """Returns all stored entries in order, an empty list if nothing is stored."""

    @abstractmethod
    def clear(self) -> None:
        """Removes the store. Calling it on an absent store is not an error."""
