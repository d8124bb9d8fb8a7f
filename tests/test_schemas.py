"""Tests for model validation and serialization."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from prassign.errors import (
    AssignmentError,
    NoCandidate,
    NotFound,
    PRAlreadyExists,
    StorageError,
    UserNotFound,
)
from prassign.models.schemas import (
    PRStatus,
    PullRequest,
    Team,
    TeamMember,
    UserReviewStat,
    rank_review_stats,
)


class TestModels:
    def test_team_expands_to_users(self):
        team = Team(
            team_name="T",
            members=[
                TeamMember(user_id="A", username="alice"),
                TeamMember(user_id="B", username="bob", is_active=False),
            ],
        )
        users = team.to_users()
        assert [u.team_name for u in users] == ["T", "T"]
        assert users[1].is_active is False
        assert team.member_ids() == ["A", "B"]

    def test_team_member_defaults_active(self):
        assert TeamMember(user_id="A", username="alice").is_active is True

    def test_pull_request_defaults(self):
        pr = PullRequest(
            pull_request_id="pr-1",
            pull_request_name="t",
            author_id="A",
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        assert pr.status == PRStatus.OPEN
        assert pr.assigned_reviewers == []
        assert pr.merged_at is None
        assert not pr.is_merged

    def test_pull_request_status_from_string(self):
        pr = PullRequest.model_validate({
            "pull_request_id": "pr-1",
            "pull_request_name": "t",
            "author_id": "A",
            "status": "MERGED",
            "created_at": "2025-01-01T00:00:00Z",
            "merged_at": "2025-01-02T00:00:00Z",
        })
        assert pr.is_merged
        assert pr.merged_at.tzinfo is not None

    def test_pull_request_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            PullRequest.model_validate({
                "pull_request_id": "pr-1",
                "pull_request_name": "t",
                "author_id": "A",
                "status": "CLOSED",
                "created_at": "2025-01-01T00:00:00Z",
            })

    def test_to_short(self):
        pr = PullRequest(
            pull_request_id="pr-1",
            pull_request_name="t",
            author_id="A",
            assigned_reviewers=["B"],
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        short = pr.to_short()
        assert short.model_dump() == {
            "pull_request_id": "pr-1",
            "pull_request_name": "t",
            "author_id": "A",
            "status": PRStatus.OPEN,
        }

    def test_rank_review_stats(self):
        stats = [
            UserReviewStat(user_id="C", username="c", is_active=True, review_count=1),
            UserReviewStat(user_id="A", username="a", is_active=True, review_count=0),
            UserReviewStat(user_id="B", username="b", is_active=False, review_count=1),
        ]
        assert [s.user_id for s in rank_review_stats(stats)] == ["B", "C", "A"]


class TestErrors:
    def test_default_messages(self):
        assert NoCandidate().message == "no active replacement candidate in team"
        assert str(UserNotFound()) == "user not found"

    def test_custom_message(self):
        assert PRAlreadyExists("pull request 'x' exists").message == (
            "pull request 'x' exists"
        )

    def test_codes(self):
        assert UserNotFound.code == NotFound.code == "NOT_FOUND"
        assert PRAlreadyExists.code == "PR_EXISTS"
        assert StorageError.code == "INTERNAL_ERROR"

    def test_hierarchy(self):
        assert issubclass(UserNotFound, NotFound)
        assert issubclass(StorageError, AssignmentError)
