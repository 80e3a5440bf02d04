"""
Staged writes - proposed file mutations waiting for apply or discard.

Entries are ordered by first staging and keyed by path. Staging the same
path again replaces the pending entry in place; it never adds a second
one. Positions shown to the model are 1-based.
"""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class StagedWrite:
    """A pending write and the diff it would produce."""
    path: str
    content: str
    diff_text: str


class WriteStaging:
    """Ordered staged writes with upsert-by-path."""

    def __init__(self) -> None:
        self._writes: dict[str, StagedWrite] = {}

    def stage(self, path: str, content: str, diff_text: str) -> StagedWrite:
        write = StagedWrite(path=path, content=content, diff_text=diff_text)
        if path in self._writes:
            logger.debug(f"Replacing staged write for {path}")
        self._writes[path] = write
        return write

    def get(self, path: str) -> StagedWrite | None:
        return self._writes.get(path)

    def remove(self, path: str) -> StagedWrite | None:
        return self._writes.pop(path, None)

    def clear(self) -> None:
        self._writes.clear()

    def select(self, ids: Iterable[int] | None = None) -> list[tuple[int, StagedWrite]]:
        """
        Pick entries by 1-based position.

        With `ids` omitted every entry is selected. Out-of-range and
        non-positive positions are ignored, so they may select nothing.
        """
        numbered = list(enumerate(self._writes.values(), start=1))
        if ids is None:
            return numbered
        wanted = set(ids)
        return [(n, write) for n, write in numbered if n in wanted]

    def __iter__(self) -> Iterator[StagedWrite]:
        return iter(list(self._writes.values()))

    def __len__(self) -> int:
        return len(self._writes)

    def __contains__(self, path: str) -> bool:
        return path in self._writes

    @property
    def paths(self) -> list[str]:
        return list(self._writes.keys())
