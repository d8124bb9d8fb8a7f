"""Assignment engine: wires directory, store, selector and lifecycle gate."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

from prassign.assignment.lifecycle import LifecycleGate
from prassign.assignment.selector import CandidateSelector
from prassign.config import AssignmentConfig
from prassign.errors import (
    AuthorCannotBeReassigned,
    AuthorInactive,
    AuthorNotFound,
    InvalidInput,
    NoCandidate,
    PRAlreadyExists,
    StorageError,
    TeamAlreadyExists,
    UserNotFound,
)
from prassign.models.schemas import (
    PRStatus,
    PullRequest,
    PullRequestShort,
    Reassignment,
    ReassignResult,
    Team,
    User,
    UserReviewStat,
)
from prassign.storage.base import (
    PullRequestRepository,
    StatsRepository,
    Storage,
    TeamRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

REASSIGN_COUNT = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _operation(name: str) -> Iterator[None]:
    """Add operation context to storage failures; domain errors pass through."""
    try:
        yield
    except StorageError as exc:
        logger.error("%s failed: %s", name, exc)
        raise StorageError(f"{name}: {exc}") from exc


def _require(value: str, field: str) -> str:
    if not value or not value.strip():
        raise InvalidInput(f"{field} must not be empty")
    return value


class AssignmentEngine:
    """Create pull requests with reviewers, swap reviewers, and merge.

    The engine keeps no state of its own; everything lives in the injected
    repositories, so one instance can serve any number of concurrent
    commands.
    """

    def __init__(
        self,
        users: UserRepository,
        teams: TeamRepository,
        pull_requests: PullRequestRepository,
        stats: StatsRepository,
        selector: CandidateSelector | None = None,
        config: AssignmentConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or AssignmentConfig()
        self.users = users
        self.teams = teams
        self.pull_requests = pull_requests
        self.stats = stats
        self.selector = selector or CandidateSelector()
        self.gate = LifecycleGate(self.config.merge_policy)
        self._clock = clock

    @classmethod
    def from_storage(
        cls,
        storage: Storage,
        *,
        selector: CandidateSelector | None = None,
        config: AssignmentConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> AssignmentEngine:
        return cls(
            storage.users,
            storage.teams,
            storage.pull_requests,
            storage.stats,
            selector=selector,
            config=config,
            clock=clock,
        )

    # ── Pull requests ────────────────────────────────────────────────────

    async def create_pr(
        self, pr_id: str, pr_name: str, author_id: str
    ) -> PullRequest:
        """Create a pull request and assign up to ``reviewers_per_pr`` reviewers."""
        _require(pr_id, "pull_request_id")
        _require(pr_name, "pull_request_name")
        _require(author_id, "author_id")

        with _operation(f"create pull request {pr_id!r}"):
            if await self.pull_requests.pr_exists(pr_id):
                logger.warning("Pull request %s already exists", pr_id)
                raise PRAlreadyExists(f"pull request {pr_id!r} already exists")

            author = await self._resolve_author(author_id)
            if not author.is_active:
                logger.warning(
                    "Inactive author %s attempted to create %s", author_id, pr_id
                )
                raise AuthorInactive()

            pool = await self.users.get_active_team_members(
                author.team_name, {author.user_id}
            )
            reviewers = self.selector.select(
                pool, {author.user_id}, self.config.reviewers_per_pr
            )
            if len(reviewers) < self.config.min_reviewers:
                logger.warning(
                    "Only %d eligible reviewers for %s, %d required",
                    len(reviewers),
                    pr_id,
                    self.config.min_reviewers,
                )
                raise NoCandidate(
                    f"team {author.team_name!r} has {len(reviewers)} eligible "
                    f"reviewers, {self.config.min_reviewers} required"
                )

            pr = PullRequest(
                pull_request_id=pr_id,
                pull_request_name=pr_name,
                author_id=author.user_id,
                status=PRStatus.OPEN,
                assigned_reviewers=reviewers,
                created_at=self._clock(),
            )
            await self.pull_requests.create_pr(pr)

        logger.info(
            "Created pull request %s with %d reviewers", pr_id, len(reviewers)
        )
        return pr

    async def reassign_reviewer(self, pr_id: str, old_user_id: str) -> ReassignResult:
        """Replace one reviewer with a random eligible teammate of the author."""
        _require(pr_id, "pull_request_id")
        _require(old_user_id, "old_user_id")

        with _operation(f"reassign reviewer on {pr_id!r}"):
            pr = await self.pull_requests.get_pr(pr_id)
            self.gate.ensure_reassignable(pr)

            author = await self._resolve_author(pr.author_id)
            if old_user_id == author.user_id:
                logger.warning("Attempted to reassign author of %s", pr_id)
                raise AuthorCannotBeReassigned()

            exclude = {*pr.assigned_reviewers, author.user_id}
            pool = await self.users.get_active_team_members(author.team_name, exclude)
            chosen = self.selector.select(pool, exclude, REASSIGN_COUNT)
            if not chosen:
                logger.warning("No replacement candidate for %s", pr_id)
                raise NoCandidate()
            new_user_id = chosen[0]

            await self.pull_requests.reassign_reviewer(
                Reassignment(
                    pull_request_id=pr_id,
                    old_user_id=old_user_id,
                    new_user_id=new_user_id,
                )
            )
            updated = await self.pull_requests.get_pr(pr_id)

        logger.info(
            "Reassigned reviewer on %s: %s -> %s", pr_id, old_user_id, new_user_id
        )
        return ReassignResult(pull_request=updated, replaced_by=new_user_id)

    async def set_merge(self, pr_id: str) -> PullRequest:
        """Mark a pull request merged; repeats follow ``merge_policy``."""
        _require(pr_id, "pull_request_id")

        with _operation(f"merge pull request {pr_id!r}"):
            updated = await self.pull_requests.set_merged(
                pr_id, self._clock(), only_if_open=self.gate.merge_only_if_open
            )
            if not updated:
                self.gate.on_already_merged(pr_id)
            return await self.pull_requests.get_pr(pr_id)

    async def get_pr(self, pr_id: str) -> PullRequest:
        _require(pr_id, "pull_request_id")
        with _operation(f"get pull request {pr_id!r}"):
            return await self.pull_requests.get_pr(pr_id)

    # ── Users & teams ────────────────────────────────────────────────────

    async def create_team(self, team: Team) -> Team:
        """Create a team and its members in one transaction."""
        if not team.team_name or not team.team_name.strip():
            logger.warning("Attempt to create team with empty name")
            raise InvalidInput("team_name must not be empty")
        if not team.members:
            logger.warning("Attempt to create team %s with no members", team.team_name)
            raise InvalidInput("members must not be empty")
        ids = team.member_ids()
        if any(not i or not i.strip() for i in ids):
            raise InvalidInput("every member needs a user_id")
        if len(set(ids)) != len(ids):
            raise InvalidInput("member user_ids must be unique")

        with _operation(f"create team {team.team_name!r}"):
            if await self.teams.team_exists(team.team_name):
                logger.warning("Team %s already exists", team.team_name)
                raise TeamAlreadyExists(f"team {team.team_name!r} already exists")
            created = await self.teams.create_team_with_members(team)

        logger.info(
            "Team %s created with %d members", team.team_name, len(team.members)
        )
        return created

    async def get_team(self, team_name: str) -> Team:
        _require(team_name, "team_name")
        with _operation(f"get team {team_name!r}"):
            return await self.teams.get_team(team_name)

    async def set_user_active(self, user_id: str, is_active: bool) -> User:
        _require(user_id, "user_id")
        with _operation(f"set is_active for {user_id!r}"):
            user = await self.users.set_active(user_id, is_active)
        logger.info("User %s is_active=%s", user_id, is_active)
        return user

    # ── Reads ────────────────────────────────────────────────────────────

    async def get_reviews_for_user(self, user_id: str) -> list[PullRequestShort]:
        """Return every pull request the user is currently reviewing."""
        _require(user_id, "user_id")
        with _operation(f"get reviews for {user_id!r}"):
            await self.users.get_user(user_id)
            prs = await self.pull_requests.get_prs_by_reviewer(user_id)
        logger.debug("User %s reviews %d pull requests", user_id, len(prs))
        return [pr.to_short() for pr in prs]

    async def get_review_stats(self) -> list[UserReviewStat]:
        with _operation("get review stats"):
            return await self.stats.get_review_stats()

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _resolve_author(self, author_id: str) -> User:
        try:
            return await self.users.get_user(author_id)
        except UserNotFound as exc:
            logger.warning("Author %s not found", author_id)
            raise AuthorNotFound(f"author {author_id!r} not found") from exc
