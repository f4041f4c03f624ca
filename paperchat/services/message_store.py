"""Ordered transcript of the active conversation."""

from __future__ import annotations

from typing import Iterable, Iterator

from .models import TranscriptEntry


class MessageStore:
    """Append-only transcript with wholesale replacement.

    There is deliberately no update or delete: an answer is always appended
    after its optimistic question, never written over it.
    """

    def __init__(self, entries: Iterable[TranscriptEntry] = ()) -> None:
        self._entries: list[TranscriptEntry] = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(tuple(self._entries))

    @property
    def entries(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def append(self, entry: TranscriptEntry) -> None:
        self._entries.append(entry)

    def replace(self, entries: Iterable[TranscriptEntry]) -> None:
        self._entries = list(entries)

    def clear(self) -> None:
        self._entries = []

    def find(self, entry_id: str) -> TranscriptEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None


__all__ = ["MessageStore"]
