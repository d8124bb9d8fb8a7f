"""Error taxonomy for reviewer assignment.

Every failure the engine can report is a subclass of ``AssignmentError`` and
carries a machine-readable ``code``. Transports map these classes to their own
status codes; the core never does.
"""

from __future__ import annotations


class AssignmentError(Exception):
    """Base class for all errors raised by prassign."""

    code = "ASSIGNMENT_ERROR"
    default_message = "reviewer assignment failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# ── Validation ───────────────────────────────────────────────────────────────


class InvalidInput(AssignmentError):
    code = "INVALID_INPUT"
    default_message = "one of the parameters is incorrect"


# ── Not found ────────────────────────────────────────────────────────────────


class NotFound(AssignmentError):
    code = "NOT_FOUND"
    default_message = "resource not found"


class UserNotFound(NotFound):
    default_message = "user not found"


class TeamNotFound(NotFound):
    default_message = "team not found"


class AuthorNotFound(NotFound):
    default_message = "author not found"


class PRNotFound(NotFound):
    default_message = "pull request not found"


# ── Conflicts ────────────────────────────────────────────────────────────────


class AlreadyExists(AssignmentError):
    code = "ALREADY_EXISTS"
    default_message = "resource already exists"


class TeamAlreadyExists(AlreadyExists):
    code = "TEAM_EXISTS"
    default_message = "team already exists"


class PRAlreadyExists(AlreadyExists):
    code = "PR_EXISTS"
    default_message = "pull request already exists"


class ReviewerAlreadyAssigned(AlreadyExists):
    """A concurrent reassignment already put the chosen reviewer on the PR."""

    code = "REVIEWER_ASSIGNED"
    default_message = "replacement reviewer is already assigned to this pull request"


# ── Policy violations ────────────────────────────────────────────────────────


class AuthorInactive(AssignmentError):
    code = "AUTHOR_INACTIVE"
    default_message = "author is inactive and cannot create pull requests"


class AuthorCannotBeReassigned(AssignmentError):
    code = "AUTHOR_NOT_REVIEWER"
    default_message = "the author of a pull request cannot be reassigned"


class PRMerged(AssignmentError):
    code = "PR_MERGED"
    default_message = "cannot reassign on a merged pull request"


class UserNotAssigned(AssignmentError):
    code = "NOT_ASSIGNED"
    default_message = "user to be reassigned is not currently a reviewer"


# ── Exhaustion / infrastructure ──────────────────────────────────────────────


class NoCandidate(AssignmentError):
    code = "NO_CANDIDATE"
    default_message = "no active replacement candidate in team"


class DeadlineExceeded(AssignmentError):
    code = "TIMEOUT"
    default_message = "command did not finish before its deadline"


class StorageError(AssignmentError):
    """Storage connectivity or transaction failure.

    The message carries operation context for logs; transports must not
    forward it to clients.
    """

    code = "INTERNAL_ERROR"
    default_message = "storage operation failed"
