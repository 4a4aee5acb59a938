"""
Task variants for the tracker pipeline.

A task is a small, immutable record of one unit of work. Tasks carry no
behavior: the executor dispatches on their type. Every task is persisted as
part of the state snapshot, tagged by its ``type`` field::

    {"type": "ensure_label", "name": "[spec] css-grid", "color": "fbca04"}

Adding a variant means adding a model here, listing it in ``TASK_TYPES``
and ``Task``, and registering a handler in the executor. The executor
refuses to start if its dispatch table and ``TASK_TYPES`` disagree.

Workflow Overview:
    Working group side::

        PollWGIssues -> FetchIssueComments -> ProcessComment
            -> EnsureLabel* + FileDecisionIssue

    Decisions side::

        PollDecisionIssues -> FileBug -> FileBugWithDetails -> AddIssueComment
                           -> RemoveBugLabel
                           -> CloseIssue

    ``LoadDecisionLabels`` and ``LoadDecisionsRepoId`` are staged on demand
    by tasks that need the lookup caches.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from wg_tracker.models.domain import IssueLabel


class _TaskBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class PollWGIssues(_TaskBase):
    """Find working group issues updated since ``since``."""

    type: Literal["poll_wg_issues"] = "poll_wg_issues"
    since: datetime


class FetchIssueComments(_TaskBase):
    """Fetch the comments of one working group issue."""

    type: Literal["fetch_issue_comments"] = "fetch_issue_comments"
    issue_number: int
    issue_title: str
    issue_labels: list[IssueLabel] = Field(default_factory=list)
    since: datetime


class ProcessComment(_TaskBase):
    """Look for resolutions in one working group comment."""

    type: Literal["process_comment"] = "process_comment"
    issue_number: int
    issue_title: str
    issue_labels: list[IssueLabel] = Field(default_factory=list)
    url: str
    body_text: str


class PollDecisionIssues(_TaskBase):
    """Find decision issues updated since ``since``."""

    type: Literal["poll_decision_issues"] = "poll_decision_issues"
    since: datetime


class LoadDecisionLabels(_TaskBase):
    """Populate the label cache from the decisions repository."""

    type: Literal["load_decision_labels"] = "load_decision_labels"


class EnsureLabel(_TaskBase):
    """Create a label in the decisions repository unless it exists."""

    type: Literal["ensure_label"] = "ensure_label"
    name: str
    color: str


class FileDecisionIssue(_TaskBase):
    """Open a decision issue summarizing resolutions."""

    type: Literal["file_decision_issue"] = "file_decision_issue"
    issue_number: int
    issue_title: str
    labels: list[str] = Field(default_factory=list)
    comment_url: str
    resolutions: list[str]


class LoadDecisionsRepoId(_TaskBase):
    """Populate the cached node ID of the decisions repository."""

    type: Literal["load_decisions_repo_id"] = "load_decisions_repo_id"


class FileBug(_TaskBase):
    """Read a decision issue and prepare a bug for it."""

    type: Literal["file_bug"] = "file_bug"
    product: str
    component: str
    issue_number: int
    issue_id: str


class FileBugWithDetails(_TaskBase):
    """File a bug tracker ticket."""

    type: Literal["file_bug_with_details"] = "file_bug_with_details"
    product: str
    component: str
    summary: str
    description: str
    urls: list[str] = Field(default_factory=list)
    issue_id: str


class RemoveBugLabel(_TaskBase):
    """Take the ``bug`` label off a decision issue."""

    type: Literal["remove_bug_label"] = "remove_bug_label"
    issue_id: str


class CloseIssue(_TaskBase):
    type: Literal["close_issue"] = "close_issue"
    issue_id: str


class AddIssueComment(_TaskBase):
    type: Literal["add_issue_comment"] = "add_issue_comment"
    issue_id: str
    body: str


TASK_TYPES: tuple[type[BaseModel], ...] = (
    PollWGIssues,
    FetchIssueComments,
    ProcessComment,
    PollDecisionIssues,
    LoadDecisionLabels,
    EnsureLabel,
    FileDecisionIssue,
    LoadDecisionsRepoId,
    FileBug,
    FileBugWithDetails,
    RemoveBugLabel,
    CloseIssue,
    AddIssueComment,
)

Task = Annotated[
    PollWGIssues
    | FetchIssueComments
    | ProcessComment
    | PollDecisionIssues
    | LoadDecisionLabels
    | EnsureLabel
    | FileDecisionIssue
    | LoadDecisionsRepoId
    | FileBug
    | FileBugWithDetails
    | RemoveBugLabel
    | CloseIssue
    | AddIssueComment,
    Field(discriminator="type"),
]


def describe(task: Task) -> dict[str, Any]:
    """Short, log-friendly summary of a task."""
    summary: dict[str, Any] = {"task": task.type}
    for key in ("issue_number", "issue_id", "name", "url"):
        value = getattr(task, key, None)
        if value is not None:
            summary[key] = value
    return summary
