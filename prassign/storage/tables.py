"""SQLAlchemy table mappings."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TeamRow(Base):
    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(Text, primary_key=True)


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    team_name: Mapped[str] = mapped_column(
        Text, ForeignKey("teams.name", ondelete="RESTRICT"), nullable=False, index=True
    )


class PullRequestRow(Base):
    __tablename__ = "pull_requests"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    merged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("status IN ('OPEN', 'MERGED')", name="ck_pull_requests_status"),
        CheckConstraint(
            "(status = 'MERGED') = (merged_at IS NOT NULL)",
            name="ck_pull_requests_merged_at",
        ),
    )


class ReviewerRow(Base):
    __tablename__ = "pull_request_reviewers"

    # Composite key: a reviewer appears at most once per pull request.
    pull_request_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("pull_requests.id", ondelete="CASCADE"), primary_key=True
    )
    reviewer_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.id", ondelete="RESTRICT"), primary_key=True, index=True
    )
