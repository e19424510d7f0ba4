"""Domain services: queue stepping, shuffling and search-result matching."""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Final, TypeVar

from discord_node_player.domain.music.entities import Track, TrackPartial
from discord_node_player.domain.music.value_objects import LoopMode

T = TypeVar("T")

# Accepted candidate length relative to the hinted length.
DURATION_MATCH_BEFORE_MS: Final[int] = 2000
DURATION_MATCH_AFTER_MS: Final[int] = 200
TOPIC_CHANNEL_SUFFIX: Final[str] = " - Topic"


class QueueDomainService:
    """Pure queue rules, kept free of I/O so they can be tested directly."""

    @staticmethod
    def next_index(current: int | None, loop: LoopMode, length: int) -> int | None:
        """Return the queue index to play after ``current``, or None at queue end.

        - no current index: start at 0
        - loop SINGLE: stay on the current index
        - otherwise step forward, wrapping to 0 past the end when loop is QUEUE
        """
        if current is None:
            index = 0
        else:
            index = current if loop == LoopMode.SINGLE else current + 1
            if index >= length and loop == LoopMode.QUEUE:
                index = 0

        if index < 0 or index >= length:
            return None
        return index

    @staticmethod
    def shuffle(queue: list[T], rng: random.Random | None = None) -> None:
        """Unbiased in-place Fisher–Yates shuffle."""
        rand = rng or random
        for i in range(len(queue) - 1, 0, -1):
            j = rand.randint(0, i)
            queue[i], queue[j] = queue[j], queue[i]


class TrackMatchingService:
    """Choose the best primary-catalog candidate for an unresolved entry."""

    @staticmethod
    def author_matches(candidate: Track, author: str) -> bool:
        """Exact author or its ``"<author> - Topic"`` channel, case-insensitive."""
        wanted = {author.casefold(), f"{author}{TOPIC_CHANNEL_SUFFIX}".casefold()}
        return candidate.author.casefold() in wanted

    @staticmethod
    def duration_matches(candidate: Track, length_ms: int) -> bool:
        if not candidate.length_ms:
            return False
        return (
            length_ms - DURATION_MATCH_BEFORE_MS
            <= candidate.length_ms
            <= length_ms + DURATION_MATCH_AFTER_MS
        )

    @classmethod
    def pick_best(cls, candidates: Sequence[Track], partial: TrackPartial) -> Track | None:
        """Author match beats duration match beats first candidate."""
        if not candidates:
            return None

        if partial.author:
            for candidate in candidates:
                if cls.author_matches(candidate, partial.author):
                    return candidate

        if partial.length_ms:
            for candidate in candidates:
                if cls.duration_matches(candidate, partial.length_ms):
                    return candidate

        return candidates[0]
