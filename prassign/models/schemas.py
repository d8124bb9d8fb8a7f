"""All Pydantic models for prassign."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# ── Directory ────────────────────────────────────────────────────────────────


class User(BaseModel):
    user_id: str
    username: str
    is_active: bool = True
    team_name: str


class TeamMember(BaseModel):
    user_id: str
    username: str
    is_active: bool = True


class Team(BaseModel):
    team_name: str
    members: list[TeamMember] = Field(default_factory=list)

    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def to_users(self) -> list[User]:
        """Expand members into full User records bound to this team."""
        return [
            User(
                user_id=m.user_id,
                username=m.username,
                is_active=m.is_active,
                team_name=self.team_name,
            )
            for m in self.members
        ]


# ── Pull requests ────────────────────────────────────────────────────────────


class PRStatus(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"


class PullRequest(BaseModel):
    pull_request_id: str
    pull_request_name: str
    author_id: str
    status: PRStatus = PRStatus.OPEN
    assigned_reviewers: list[str] = Field(default_factory=list)
    created_at: datetime
    merged_at: datetime | None = None

    @property
    def is_merged(self) -> bool:
        return self.status == PRStatus.MERGED

    def to_short(self) -> PullRequestShort:
        return PullRequestShort(
            pull_request_id=self.pull_request_id,
            pull_request_name=self.pull_request_name,
            author_id=self.author_id,
            status=self.status,
        )


class PullRequestShort(BaseModel):
    pull_request_id: str
    pull_request_name: str
    author_id: str
    status: PRStatus


class Reassignment(BaseModel):
    """One atomic reviewer swap on a pull request."""

    pull_request_id: str
    old_user_id: str
    new_user_id: str


class ReassignResult(BaseModel):
    pull_request: PullRequest
    replaced_by: str


# ── Statistics ───────────────────────────────────────────────────────────────


class UserReviewStat(BaseModel):
    user_id: str
    username: str
    is_active: bool
    review_count: int = 0


def rank_review_stats(stats: list[UserReviewStat]) -> list[UserReviewStat]:
    """Order stats by review count (highest first), then by user id."""
    return sorted(stats, key=lambda s: (-s.review_count, s.user_id))
