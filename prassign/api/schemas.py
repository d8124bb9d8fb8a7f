"""Request and response bodies for the HTTP transport."""

from __future__ import annotations

from pydantic import BaseModel, Field

from prassign.models.schemas import (
    PullRequest,
    PullRequestShort,
    Team,
    User,
    UserReviewStat,
)


# ── Errors ───────────────────────────────────────────────────────────────────


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


# ── Requests ─────────────────────────────────────────────────────────────────


class SetIsActiveRequest(BaseModel):
    user_id: str
    is_active: bool


class CreatePullRequestRequest(BaseModel):
    pull_request_id: str
    pull_request_name: str
    author_id: str


class MergePullRequestRequest(BaseModel):
    pull_request_id: str


class ReassignReviewerRequest(BaseModel):
    pull_request_id: str
    old_user_id: str


# ── Responses ────────────────────────────────────────────────────────────────


class TeamResponse(BaseModel):
    team: Team


class UserResponse(BaseModel):
    user: User


class PullRequestResponse(BaseModel):
    pr: PullRequest


class ReassignResponse(BaseModel):
    pr: PullRequest
    replaced_by: str


class UserReviewsResponse(BaseModel):
    user_id: str
    pull_requests: list[PullRequestShort] = Field(default_factory=list)


class StatsResponse(BaseModel):
    stats: list[UserReviewStat] = Field(default_factory=list)
