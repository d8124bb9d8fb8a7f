"""In-process storage backend.

State lives in plain dicts owned by ``_MemoryState``. Writes that touch more
than one record build a working copy and only swap it in once every step has
succeeded, so a failure part way through leaves the old state visible.
Reviewer swaps on the same PR are serialized by a per-PR ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from prassign.errors import (
    PRAlreadyExists,
    PRMerged,
    PRNotFound,
    ReviewerAlreadyAssigned,
    TeamAlreadyExists,
    TeamNotFound,
    UserNotAssigned,
    UserNotFound,
)
from prassign.models.schemas import (
    PRStatus,
    PullRequest,
    Reassignment,
    Team,
    TeamMember,
    User,
    UserReviewStat,
    rank_review_stats,
)
from prassign.storage.base import (
    PullRequestRepository,
    StatsRepository,
    Storage,
    TeamRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


class _MemoryState:
    def __init__(self) -> None:
        self.users: dict[str, User] = {}
        self.teams: set[str] = set()
        self.pull_requests: dict[str, PullRequest] = {}
        self.pr_locks: dict[str, asyncio.Lock] = {}

    def pr_lock(self, pr_id: str) -> asyncio.Lock:
        return self.pr_locks.setdefault(pr_id, asyncio.Lock())


class MemoryUserRepository(UserRepository):
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def get_user(self, user_id: str) -> User:
        user = self._state.users.get(user_id)
        if user is None:
            raise UserNotFound(f"user {user_id!r} not found")
        return user.model_copy()

    async def get_active_team_members(
        self, team_name: str, exclude_ids: set[str]
    ) -> list[User]:
        return [
            u.model_copy()
            for u in self._state.users.values()
            if u.team_name == team_name
            and u.is_active
            and u.user_id not in exclude_ids
        ]

    async def set_active(self, user_id: str, is_active: bool) -> User:
        user = self._state.users.get(user_id)
        if user is None:
            raise UserNotFound(f"user {user_id!r} not found")
        updated = user.model_copy(update={"is_active": is_active})
        self._state.users[user_id] = updated
        logger.debug("Set is_active=%s for user %s", is_active, user_id)
        return updated.model_copy()


class MemoryTeamRepository(TeamRepository):
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def team_exists(self, team_name: str) -> bool:
        return team_name in self._state.teams

    async def get_team(self, team_name: str) -> Team:
        if team_name not in self._state.teams:
            raise TeamNotFound(f"team {team_name!r} not found")
        members = [
            TeamMember(user_id=u.user_id, username=u.username, is_active=u.is_active)
            for u in self._state.users.values()
            if u.team_name == team_name
        ]
        return Team(team_name=team_name, members=members)

    async def create_team_with_members(self, team: Team) -> Team:
        if team.team_name in self._state.teams:
            raise TeamAlreadyExists(f"team {team.team_name!r} already exists")
        users = dict(self._state.users)
        for user in team.to_users():
            users[user.user_id] = user
        # commit
        self._state.users = users
        self._state.teams.add(team.team_name)
        logger.debug(
            "Created team %s with %d members", team.team_name, len(team.members)
        )
        return team


class MemoryPullRequestRepository(PullRequestRepository):
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def pr_exists(self, pr_id: str) -> bool:
        return pr_id in self._state.pull_requests

    async def create_pr(self, pr: PullRequest) -> None:
        async with self._state.pr_lock(pr.pull_request_id):
            if pr.pull_request_id in self._state.pull_requests:
                raise PRAlreadyExists(
                    f"pull request {pr.pull_request_id!r} already exists"
                )
            record = pr.model_copy(deep=True)
            record.assigned_reviewers = list(dict.fromkeys(pr.assigned_reviewers))
            self._state.pull_requests[pr.pull_request_id] = record

    async def get_pr(self, pr_id: str) -> PullRequest:
        pr = self._state.pull_requests.get(pr_id)
        if pr is None:
            raise PRNotFound(f"pull request {pr_id!r} not found")
        return pr.model_copy(deep=True)

    async def reassign_reviewer(self, reassignment: Reassignment) -> None:
        pr_id = reassignment.pull_request_id
        async with self._state.pr_lock(pr_id):
            record = self._state.pull_requests.get(pr_id)
            if record is None:
                raise PRNotFound(f"pull request {pr_id!r} not found")
            if record.is_merged:
                raise PRMerged()

            reviewers = list(record.assigned_reviewers)
            if reassignment.old_user_id not in reviewers:
                logger.warning(
                    "Old reviewer %s was not assigned to %s",
                    reassignment.old_user_id,
                    pr_id,
                )
                raise UserNotAssigned()
            reviewers.remove(reassignment.old_user_id)
            self._insert_reviewer(reviewers, reassignment.new_user_id)

            # commit
            self._state.pull_requests[pr_id] = record.model_copy(
                update={"assigned_reviewers": reviewers}
            )

    @staticmethod
    def _insert_reviewer(reviewers: list[str], user_id: str) -> None:
        if user_id in reviewers:
            logger.warning("Reviewer %s is already assigned", user_id)
            raise ReviewerAlreadyAssigned(
                f"reviewer {user_id!r} is already assigned"
            )
        reviewers.append(user_id)

    async def set_merged(
        self,
        pr_id: str,
        merged_at: datetime,
        *,
        only_if_open: bool = False,
    ) -> bool:
        async with self._state.pr_lock(pr_id):
            record = self._state.pull_requests.get(pr_id)
            if record is None:
                raise PRNotFound(f"pull request {pr_id!r} not found")
            if only_if_open and record.is_merged:
                return False
            self._state.pull_requests[pr_id] = record.model_copy(
                update={"status": PRStatus.MERGED, "merged_at": merged_at}
            )
            return True

    async def get_prs_by_reviewer(self, user_id: str) -> list[PullRequest]:
        return [
            pr.model_copy(deep=True)
            for pr in self._state.pull_requests.values()
            if user_id in pr.assigned_reviewers
        ]


class MemoryStatsRepository(StatsRepository):
    def __init__(self, state: _MemoryState) -> None:
        self._state = state

    async def get_review_stats(self) -> list[UserReviewStat]:
        counts: dict[str, int] = {}
        for pr in self._state.pull_requests.values():
            for reviewer_id in pr.assigned_reviewers:
                counts[reviewer_id] = counts.get(reviewer_id, 0) + 1

        return rank_review_stats([
            UserReviewStat(
                user_id=u.user_id,
                username=u.username,
                is_active=u.is_active,
                review_count=counts.get(u.user_id, 0),
            )
            for u in self._state.users.values()
        ])


class MemoryStorage(Storage):
    """Storage kept entirely in process memory."""

    def __init__(self) -> None:
        self._state = _MemoryState()
        self.users = MemoryUserRepository(self._state)
        self.teams = MemoryTeamRepository(self._state)
        self.pull_requests = MemoryPullRequestRepository(self._state)
        self.stats = MemoryStatsRepository(self._state)

    async def init_schema(self) -> None:
        return None

    async def close(self) -> None:
        return None
