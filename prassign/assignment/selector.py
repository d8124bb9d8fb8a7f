"""Random reviewer selection."""

from __future__ import annotations

import logging
import random
from typing import Iterable

from prassign.models.schemas import User

logger = logging.getLogger(__name__)


class CandidateSelector:
    """Pick distinct reviewers uniformly at random.

    The random source is injected so tests can pass a seeded
    ``random.Random``; by default a fresh instance seeded from OS entropy is
    used.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def select(
        self,
        candidates: Iterable[User],
        exclude: Iterable[str] = (),
        count: int = 1,
    ) -> list[str]:
        """Return up to ``count`` distinct candidate ids in random order.

        Candidates are expected to be pre-filtered by the caller; ``exclude``
        is re-checked here anyway. An empty pool yields an empty list and a
        pool smaller than ``count`` is returned whole.
        """
        if count <= 0:
            return []

        excluded = set(exclude)
        ids = [
            user_id
            for user_id in dict.fromkeys(u.user_id for u in candidates)
            if user_id not in excluded
        ]
        if not ids:
            logger.warning("No active members available for review assignment")
            return []

        self._rng.shuffle(ids)
        chosen = ids[:count]
        logger.debug("Selected %d of %d candidates", len(chosen), len(ids))
        return chosen
