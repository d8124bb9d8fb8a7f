"""Tests for the in-process storage backend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from prassign.assignment.engine import AssignmentEngine
from prassign.errors import (
    PRAlreadyExists,
    PRMerged,
    ReviewerAlreadyAssigned,
    TeamAlreadyExists,
    UserNotAssigned,
)
from prassign.models.schemas import PRStatus, PullRequest, Reassignment, Team, TeamMember


def _pr(pr_id: str = "pr-1", reviewers: list[str] | None = None) -> PullRequest:
    return PullRequest(
        pull_request_id=pr_id,
        pull_request_name="Add search",
        author_id="A",
        assigned_reviewers=reviewers if reviewers is not None else ["B", "C"],
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def _big_team() -> Team:
    return Team(
        team_name="T",
        members=[
            TeamMember(user_id=uid, username=uid.lower())
            for uid in ("A", "B", "C", "D", "E", "F")
        ],
    )


class TestMemoryTeams:
    @pytest.mark.asyncio
    async def test_create_twice(self, memory_storage, team_t):
        await memory_storage.teams.create_team_with_members(team_t)
        with pytest.raises(TeamAlreadyExists):
            await memory_storage.teams.create_team_with_members(team_t)

    @pytest.mark.asyncio
    async def test_returned_users_are_copies(self, memory_storage, team_t):
        await memory_storage.teams.create_team_with_members(team_t)
        user = await memory_storage.users.get_user("B")
        user.is_active = False
        assert (await memory_storage.users.get_user("B")).is_active is True

    @pytest.mark.asyncio
    async def test_active_members_exclude(self, memory_storage, team_t):
        await memory_storage.teams.create_team_with_members(team_t)
        await memory_storage.users.set_active("C", False)
        members = await memory_storage.users.get_active_team_members("T", {"A"})
        assert sorted(u.user_id for u in members) == ["B", "D"]


class TestMemoryPullRequests:
    @pytest.mark.asyncio
    async def test_create_twice(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        with pytest.raises(PRAlreadyExists):
            await memory_storage.pull_requests.create_pr(_pr())

    @pytest.mark.asyncio
    async def test_duplicate_reviewers_collapse(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr(reviewers=["B", "B", "C"]))
        pr = await memory_storage.pull_requests.get_pr("pr-1")
        assert pr.assigned_reviewers == ["B", "C"]

    @pytest.mark.asyncio
    async def test_reassign_swaps(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        await memory_storage.pull_requests.reassign_reviewer(
            Reassignment(pull_request_id="pr-1", old_user_id="B", new_user_id="D")
        )
        pr = await memory_storage.pull_requests.get_pr("pr-1")
        assert sorted(pr.assigned_reviewers) == ["C", "D"]

    @pytest.mark.asyncio
    async def test_reassign_not_assigned(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        with pytest.raises(UserNotAssigned):
            await memory_storage.pull_requests.reassign_reviewer(
                Reassignment(pull_request_id="pr-1", old_user_id="D", new_user_id="E")
            )

    @pytest.mark.asyncio
    async def test_reassign_rechecks_merged(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        await memory_storage.pull_requests.set_merged(
            "pr-1", datetime(2025, 1, 2, tzinfo=timezone.utc)
        )
        with pytest.raises(PRMerged):
            await memory_storage.pull_requests.reassign_reviewer(
                Reassignment(pull_request_id="pr-1", old_user_id="B", new_user_id="D")
            )

    @pytest.mark.asyncio
    async def test_insert_failure_keeps_old_reviewer(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        with patch.object(
            memory_storage.pull_requests,
            "_insert_reviewer",
            side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                await memory_storage.pull_requests.reassign_reviewer(
                    Reassignment(
                        pull_request_id="pr-1", old_user_id="B", new_user_id="D"
                    )
                )
        pr = await memory_storage.pull_requests.get_pr("pr-1")
        assert sorted(pr.assigned_reviewers) == ["B", "C"]

    @pytest.mark.asyncio
    async def test_new_reviewer_already_present(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        with pytest.raises(ReviewerAlreadyAssigned):
            await memory_storage.pull_requests.reassign_reviewer(
                Reassignment(pull_request_id="pr-1", old_user_id="B", new_user_id="C")
            )
        pr = await memory_storage.pull_requests.get_pr("pr-1")
        assert sorted(pr.assigned_reviewers) == ["B", "C"]

    @pytest.mark.asyncio
    async def test_set_merged_only_if_open(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr())
        first = datetime(2025, 1, 2, tzinfo=timezone.utc)
        second = datetime(2025, 1, 3, tzinfo=timezone.utc)

        assert await memory_storage.pull_requests.set_merged("pr-1", first)
        assert not await memory_storage.pull_requests.set_merged(
            "pr-1", second, only_if_open=True
        )
        pr = await memory_storage.pull_requests.get_pr("pr-1")
        assert pr.status == PRStatus.MERGED
        assert pr.merged_at == first

    @pytest.mark.asyncio
    async def test_prs_by_reviewer(self, memory_storage):
        await memory_storage.pull_requests.create_pr(_pr("pr-1", ["B", "C"]))
        await memory_storage.pull_requests.create_pr(_pr("pr-2", ["C", "D"]))
        prs = await memory_storage.pull_requests.get_prs_by_reviewer("C")
        assert sorted(p.pull_request_id for p in prs) == ["pr-1", "pr-2"]


class TestMemoryConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_reassign_of_same_reviewer(
        self, memory_storage, selector, paired_member_lookups
    ):
        engine = AssignmentEngine.from_storage(memory_storage, selector=selector)
        await engine.create_team(_big_team())
        pr = await engine.create_pr("pr-1", "t", "A")
        old, kept = pr.assigned_reviewers

        with paired_member_lookups(memory_storage.users):
            results = await asyncio.gather(
                engine.reassign_reviewer("pr-1", old),
                engine.reassign_reviewer("pr-1", old),
                return_exceptions=True,
            )

        failures = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], UserNotAssigned)

        final = await engine.get_pr("pr-1")
        assert len(final.assigned_reviewers) == len(set(final.assigned_reviewers)) == 2
        assert kept in final.assigned_reviewers
        assert old not in final.assigned_reviewers
        assert "A" not in final.assigned_reviewers

    @pytest.mark.asyncio
    async def test_concurrent_creates_of_same_pr(self, memory_storage, selector):
        engine = AssignmentEngine.from_storage(memory_storage, selector=selector)
        await engine.create_team(_big_team())

        results = await asyncio.gather(
            *(engine.create_pr("pr-1", "t", "A") for _ in range(5)),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, PullRequest)]
        rejected = [r for r in results if not isinstance(r, PullRequest)]
        assert len(created) == 1
        assert len(rejected) == 4
        assert all(isinstance(r, PRAlreadyExists) for r in rejected)
