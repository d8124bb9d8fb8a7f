"""Lifecycle gate deciding which pull-request transitions are allowed."""

from __future__ import annotations

import logging

from prassign.config import MergePolicy
from prassign.errors import PRMerged
from prassign.models.schemas import PullRequest

logger = logging.getLogger(__name__)


class LifecycleGate:
    """Enforce OPEN → MERGED and block reviewer changes after merge."""

    def __init__(self, merge_policy: MergePolicy = MergePolicy.RESTAMP) -> None:
        self.merge_policy = merge_policy

    def ensure_reassignable(self, pr: PullRequest) -> None:
        if pr.is_merged:
            logger.warning("Cannot reassign on merged PR %s", pr.pull_request_id)
            raise PRMerged()

    @property
    def merge_only_if_open(self) -> bool:
        """Whether the store should skip the update for already-merged PRs."""
        return self.merge_policy != MergePolicy.RESTAMP

    def on_already_merged(self, pr_id: str) -> None:
        """Handle a merge request that found the PR already merged."""
        if self.merge_policy == MergePolicy.REJECT:
            logger.warning("Pull request %s is already merged", pr_id)
            raise PRMerged(f"pull request {pr_id!r} is already merged")
        logger.info("Pull request %s already merged, leaving it unchanged", pr_id)
