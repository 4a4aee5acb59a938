"""Domain models returned by the remote providers."""

from wg_tracker.models.domain import (
    IssueComment,
    IssueContent,
    IssueLabel,
    RepoLabel,
    RepositoryRef,
    UpdatedIssue,
)

__all__ = [
    "IssueComment",
    "IssueContent",
    "IssueLabel",
    "RepoLabel",
    "RepositoryRef",
    "UpdatedIssue",
]
