"""SQL storage backend built on SQLAlchemy's asyncio extension.

Every multi-statement write runs inside ``async_sessionmaker.begin()``: the
transaction commits when the block exits normally and rolls back on any
exception, cancellation included. Driver errors are re-raised as
StorageError with the failing operation in the message.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from prassign.errors import (
    PRAlreadyExists,
    PRMerged,
    PRNotFound,
    ReviewerAlreadyAssigned,
    StorageError,
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
)
from prassign.storage.base import (
    PullRequestRepository,
    StatsRepository,
    Storage,
    TeamRepository,
    UserRepository,
)
from prassign.storage.tables import (
    Base,
    PullRequestRow,
    ReviewerRow,
    TeamRow,
    UserRow,
)

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageError(f"failed to {operation}: {exc}") from exc


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_user(row: UserRow) -> User:
    return User(
        user_id=row.id,
        username=row.username,
        is_active=row.is_active,
        team_name=row.team_name,
    )


def _to_pull_request(row: PullRequestRow, reviewer_ids: list[str]) -> PullRequest:
    return PullRequest(
        pull_request_id=row.id,
        pull_request_name=row.name,
        author_id=row.author_id,
        status=PRStatus(row.status),
        assigned_reviewers=reviewer_ids,
        created_at=_as_utc(row.created_at),
        merged_at=_as_utc(row.merged_at),
    )


class SQLUserRepository(UserRepository):
    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def get_user(self, user_id: str) -> User:
        with _storage_errors(f"get user {user_id!r}"):
            async with self._sessions() as session:
                row = await session.get(UserRow, user_id)
                if row is None:
                    raise UserNotFound(f"user {user_id!r} not found")
                return _to_user(row)

    async def get_active_team_members(
        self, team_name: str, exclude_ids: set[str]
    ) -> list[User]:
        stmt = select(UserRow).where(
            UserRow.team_name == team_name,
            UserRow.is_active.is_(True),
        )
        if exclude_ids:
            stmt = stmt.where(UserRow.id.not_in(sorted(exclude_ids)))
        stmt = stmt.order_by(UserRow.id)

        with _storage_errors(f"get active members of team {team_name!r}"):
            async with self._sessions() as session:
                rows = (await session.scalars(stmt)).all()
        logger.debug("Found %d active members in %s", len(rows), team_name)
        return [_to_user(r) for r in rows]

    async def set_active(self, user_id: str, is_active: bool) -> User:
        with _storage_errors(f"set is_active for user {user_id!r}"):
            async with self._sessions.begin() as session:
                row = await session.get(UserRow, user_id, with_for_update=True)
                if row is None:
                    raise UserNotFound(f"user {user_id!r} not found")
                row.is_active = is_active
                user = _to_user(row)
        logger.debug("Set is_active=%s for user %s", is_active, user_id)
        return user


class SQLTeamRepository(TeamRepository):
    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def team_exists(self, team_name: str) -> bool:
        with _storage_errors(f"check team {team_name!r}"):
            async with self._sessions() as session:
                return await session.get(TeamRow, team_name) is not None

    async def get_team(self, team_name: str) -> Team:
        with _storage_errors(f"get team {team_name!r}"):
            async with self._sessions() as session:
                if await session.get(TeamRow, team_name) is None:
                    raise TeamNotFound(f"team {team_name!r} not found")
                rows = (
                    await session.scalars(
                        select(UserRow)
                        .where(UserRow.team_name == team_name)
                        .order_by(UserRow.id)
                    )
                ).all()
        return Team(
            team_name=team_name,
            members=[
                TeamMember(user_id=r.id, username=r.username, is_active=r.is_active)
                for r in rows
            ],
        )

    async def create_team_with_members(self, team: Team) -> Team:
        with _storage_errors(f"create team {team.team_name!r}"):
            async with self._sessions.begin() as session:
                session.add(TeamRow(name=team.team_name))
                try:
                    await session.flush()
                except IntegrityError as exc:
                    raise TeamAlreadyExists(
                        f"team {team.team_name!r} already exists"
                    ) from exc

                for user in team.to_users():
                    row = await session.get(UserRow, user.user_id)
                    if row is None:
                        session.add(
                            UserRow(
                                id=user.user_id,
                                username=user.username,
                                is_active=user.is_active,
                                team_name=user.team_name,
                            )
                        )
                    else:
                        row.username = user.username
                        row.is_active = user.is_active
                        row.team_name = user.team_name
        logger.debug(
            "Created team %s with %d members", team.team_name, len(team.members)
        )
        return team


class SQLPullRequestRepository(PullRequestRepository):
    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def pr_exists(self, pr_id: str) -> bool:
        with _storage_errors(f"check pull request {pr_id!r}"):
            async with self._sessions() as session:
                return await session.get(PullRequestRow, pr_id) is not None

    async def create_pr(self, pr: PullRequest) -> None:
        with _storage_errors(f"create pull request {pr.pull_request_id!r}"):
            async with self._sessions.begin() as session:
                session.add(
                    PullRequestRow(
                        id=pr.pull_request_id,
                        name=pr.pull_request_name,
                        status=pr.status.value,
                        author_id=pr.author_id,
                        created_at=pr.created_at,
                        merged_at=pr.merged_at,
                    )
                )
                try:
                    await session.flush()
                except IntegrityError as exc:
                    raise PRAlreadyExists(
                        f"pull request {pr.pull_request_id!r} already exists"
                    ) from exc
                await self._insert_reviewers(
                    session,
                    pr.pull_request_id,
                    list(dict.fromkeys(pr.assigned_reviewers)),
                )

    async def get_pr(self, pr_id: str) -> PullRequest:
        with _storage_errors(f"get pull request {pr_id!r}"):
            async with self._sessions() as session:
                row = await session.get(PullRequestRow, pr_id)
                if row is None:
                    raise PRNotFound(f"pull request {pr_id!r} not found")
                reviewers = await self._reviewer_ids(session, [pr_id])
        return _to_pull_request(row, reviewers.get(pr_id, []))

    async def reassign_reviewer(self, reassignment: Reassignment) -> None:
        pr_id = reassignment.pull_request_id
        with _storage_errors(f"reassign reviewer on {pr_id!r}"):
            async with self._sessions.begin() as session:
                row = await session.get(PullRequestRow, pr_id, with_for_update=True)
                if row is None:
                    raise PRNotFound(f"pull request {pr_id!r} not found")
                if row.status == PRStatus.MERGED.value:
                    raise PRMerged()

                result = await session.execute(
                    delete(ReviewerRow).where(
                        ReviewerRow.pull_request_id == pr_id,
                        ReviewerRow.reviewer_id == reassignment.old_user_id,
                    )
                )
                if result.rowcount == 0:
                    logger.warning(
                        "Old reviewer %s was not assigned to %s",
                        reassignment.old_user_id,
                        pr_id,
                    )
                    raise UserNotAssigned()

                try:
                    await self._insert_reviewers(
                        session, pr_id, [reassignment.new_user_id]
                    )
                except IntegrityError as exc:
                    logger.warning(
                        "Reviewer %s is already assigned to %s",
                        reassignment.new_user_id,
                        pr_id,
                    )
                    raise ReviewerAlreadyAssigned(
                        f"reviewer {reassignment.new_user_id!r} is already "
                        f"assigned to {pr_id!r}"
                    ) from exc

    async def set_merged(
        self,
        pr_id: str,
        merged_at: datetime,
        *,
        only_if_open: bool = False,
    ) -> bool:
        with _storage_errors(f"merge pull request {pr_id!r}"):
            async with self._sessions.begin() as session:
                row = await session.get(PullRequestRow, pr_id, with_for_update=True)
                if row is None:
                    raise PRNotFound(f"pull request {pr_id!r} not found")
                if only_if_open and row.status == PRStatus.MERGED.value:
                    return False
                row.status = PRStatus.MERGED.value
                row.merged_at = merged_at
        logger.info("Pull request %s set to MERGED", pr_id)
        return True

    async def get_prs_by_reviewer(self, user_id: str) -> list[PullRequest]:
        stmt = (
            select(PullRequestRow)
            .join(ReviewerRow, ReviewerRow.pull_request_id == PullRequestRow.id)
            .where(ReviewerRow.reviewer_id == user_id)
            .order_by(PullRequestRow.created_at, PullRequestRow.id)
        )
        with _storage_errors(f"get pull requests reviewed by {user_id!r}"):
            async with self._sessions() as session:
                rows = (await session.scalars(stmt)).all()
                reviewers = await self._reviewer_ids(session, [r.id for r in rows])
        return [_to_pull_request(r, reviewers.get(r.id, [])) for r in rows]

    async def _insert_reviewers(
        self, session: AsyncSession, pr_id: str, reviewer_ids: list[str]
    ) -> None:
        if not reviewer_ids:
            return
        await session.execute(
            insert(ReviewerRow),
            [{"pull_request_id": pr_id, "reviewer_id": rid} for rid in reviewer_ids],
        )

    @staticmethod
    async def _reviewer_ids(
        session: AsyncSession, pr_ids: list[str]
    ) -> dict[str, list[str]]:
        if not pr_ids:
            return {}
        rows = await session.execute(
            select(ReviewerRow.pull_request_id, ReviewerRow.reviewer_id)
            .where(ReviewerRow.pull_request_id.in_(pr_ids))
            .order_by(ReviewerRow.reviewer_id)
        )
        result: dict[str, list[str]] = {}
        for pr_id, reviewer_id in rows:
            result.setdefault(pr_id, []).append(reviewer_id)
        return result


class SQLStatsRepository(StatsRepository):
    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def get_review_stats(self) -> list[UserReviewStat]:
        counts = (
            select(
                ReviewerRow.reviewer_id,
                func.count().label("review_count"),
            )
            .group_by(ReviewerRow.reviewer_id)
            .subquery()
        )
        review_count = func.coalesce(counts.c.review_count, 0).label("review_count")
        stmt = (
            select(UserRow.id, UserRow.username, UserRow.is_active, review_count)
            .outerjoin(counts, UserRow.id == counts.c.reviewer_id)
            .order_by(review_count.desc(), UserRow.id)
        )
        with _storage_errors("get review stats"):
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).all()
        logger.debug("Fetched review stats for %d users", len(rows))
        return [
            UserReviewStat(
                user_id=user_id,
                username=username,
                is_active=is_active,
                review_count=count,
            )
            for user_id, username, is_active, count in rows
        ]


class SQLStorage(Storage):
    """Storage backed by a SQL database through an async connection pool."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_recycle: int = 1800,
        echo: bool = False,
    ) -> None:
        engine_kwargs: dict = {"pool_pre_ping": True, "echo": echo}
        # SQLite picks its own pool class; sizing arguments are rejected there.
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_recycle=pool_recycle,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self._sessions = async_sessionmaker(self.engine, expire_on_commit=False)

        self.users = SQLUserRepository(self._sessions)
        self.teams = SQLTeamRepository(self._sessions)
        self.pull_requests = SQLPullRequestRepository(self._sessions)
        self.stats = SQLStatsRepository(self._sessions)

    async def init_schema(self) -> None:
        with _storage_errors("create schema"):
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready")

    async def close(self) -> None:
        logger.info("Closing database connection pool")
        await self.engine.dispose()
