"""Abstract base classes for the directory and pull-request store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from prassign.models.schemas import (
    PullRequest,
    Reassignment,
    Team,
    User,
    UserReviewStat,
)


class UserRepository(ABC):
    """Users and their active flag."""

    @abstractmethod
    async def get_user(self, user_id: str) -> User:
        """Return the user or raise UserNotFound."""
        ...

    @abstractmethod
    async def get_active_team_members(
        self, team_name: str, exclude_ids: set[str]
    ) -> list[User]:
        """Return active members of ``team_name`` not listed in ``exclude_ids``."""
        ...

    @abstractmethod
    async def set_active(self, user_id: str, is_active: bool) -> User:
        """Update the active flag and return the refreshed user."""
        ...


class TeamRepository(ABC):
    """Teams. Creation is the one operation that spans teams and users."""

    @abstractmethod
    async def team_exists(self, team_name: str) -> bool:
        ...

    @abstractmethod
    async def get_team(self, team_name: str) -> Team:
        """Return the team with its members or raise TeamNotFound."""
        ...

    @abstractmethod
    async def create_team_with_members(self, team: Team) -> Team:
        """Insert the team and upsert its members in one transaction."""
        ...


class PullRequestRepository(ABC):
    """Pull requests and their reviewer sets."""

    @abstractmethod
    async def pr_exists(self, pr_id: str) -> bool:
        ...

    @abstractmethod
    async def create_pr(self, pr: PullRequest) -> None:
        """Persist the PR together with its reviewer rows, all or nothing."""
        ...

    @abstractmethod
    async def get_pr(self, pr_id: str) -> PullRequest:
        """Return the PR with its reviewers or raise PRNotFound."""
        ...

    @abstractmethod
    async def reassign_reviewer(self, reassignment: Reassignment) -> None:
        """Swap one reviewer atomically.

        The old reviewer row is deleted first; the new row is inserted only
        if the delete removed a row. Otherwise UserNotAssigned is raised and
        nothing changes.
        """
        ...

    @abstractmethod
    async def set_merged(
        self,
        pr_id: str,
        merged_at: datetime,
        *,
        only_if_open: bool = False,
    ) -> bool:
        """Mark the PR merged.

        Returns False when ``only_if_open`` is set and the PR was already
        merged. Raises PRNotFound for unknown ids.
        """
        ...

    @abstractmethod
    async def get_prs_by_reviewer(self, user_id: str) -> list[PullRequest]:
        ...


class StatsRepository(ABC):
    @abstractmethod
    async def get_review_stats(self) -> list[UserReviewStat]:
        """Per-user review counts, highest first."""
        ...


class Storage(ABC):
    """Bundle of repositories sharing one backend."""

    users: UserRepository
    teams: TeamRepository
    pull_requests: PullRequestRepository
    stats: StatsRepository

    @abstractmethod
    async def init_schema(self) -> None:
        """Create tables or other backing structures if missing."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
