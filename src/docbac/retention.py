#!/usr/bin/env python3

"""Selection of outdated backups."""

from typing import List, Sequence

from docbac.data_structures import RetentionCandidate


def select_for_deletion(candidates: Sequence[RetentionCandidate], keep: int) -> List[str]:
    """Returns the paths of all candidates except the 'keep' newest ones.

    Args:
        candidates (Sequence[RetentionCandidate]): Listed backups of one backup class.
        keep (int): Number of backups to keep.

    Raises:
        ValueError: If 'keep' is smaller than 1.

    Returns:
        List[str]: Paths to delete, oldest last. Empty if there are not more than 'keep' candidates.
    """
    if keep < 1:
        raise ValueError(f"Number of backups to keep must be at least 1, got: {keep}.")

    newest_first = sorted(candidates, key=lambda candidate: candidate.timestamp, reverse=True)
    return [candidate.path for candidate in newest_first[keep:]]
