"""Decide which transcript entry the chat view should bring into view."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .models import Role, TranscriptEntry


logger = logging.getLogger(__name__)

BULK_LOAD_THRESHOLD = 2


class RevealTarget(Enum):
    LAST_USER = "last_user"
    LAST_ASSISTANT = "last_assistant"


@dataclass(frozen=True)
class RevealDirective:
    """Advisory request to scroll ``index`` to the top of the viewport."""

    target: RevealTarget
    index: int
    entry_id: str
    reason: str


def _last_index_of(entries: Sequence[TranscriptEntry], role: Role) -> int | None:
    for index in range(len(entries) - 1, -1, -1):
        if entries[index].role is role:
            return index
    return None


def compute_reveal(
    previous_length: int,
    entries: Sequence[TranscriptEntry],
    *,
    session_loading: bool = False,
) -> RevealDirective | None:
    """Apply the reveal decision table to a transcript change.

    More than two new entries means a stored session just finished loading:
    show the last question. One or two new entries ending in an answer means
    a round trip completed: show the start of the answer.
    """

    if session_loading:
        return None
    delta = len(entries) - previous_length
    if delta > BULK_LOAD_THRESHOLD:
        index = _last_index_of(entries, Role.USER)
        if index is None:
            return None
        return RevealDirective(
            target=RevealTarget.LAST_USER,
            index=index,
            entry_id=entries[index].id,
            reason="session history loaded",
        )
    if delta in (1, 2) and entries[-1].role is Role.ASSISTANT:
        index = len(entries) - 1
        return RevealDirective(
            target=RevealTarget.LAST_ASSISTANT,
            index=index,
            entry_id=entries[index].id,
            reason="answer arrived",
        )
    return None


class ScrollTargeter:
    """Track the last observed transcript length between changes."""

    def __init__(self) -> None:
        self._previous_length = 0

    @property
    def previous_length(self) -> int:
        return self._previous_length

    def observe(
        self,
        entries: Sequence[TranscriptEntry],
        *,
        session_loading: bool = False,
    ) -> RevealDirective | None:
        # while a session loads the baseline is frozen so the completed load
        # is measured against what was on screen before it started
        if session_loading:
            return None
        directive = compute_reveal(self._previous_length, entries)
        self._previous_length = len(entries)
        if directive is not None:
            logger.debug(
                "Reveal directive computed",
                extra={
                    "target": directive.target.value,
                    "index": directive.index,
                    "reason": directive.reason,
                },
            )
        return directive

    def reset(self) -> None:
        self._previous_length = 0


__all__ = [
    "RevealDirective",
    "RevealTarget",
    "ScrollTargeter",
    "compute_reveal",
]
