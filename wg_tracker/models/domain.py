"""
Domain models for the tracker.

These are the normalized shapes the GitHub provider hands to the engine.
They are deliberately small: each carries only the fields some task reads.
``IssueLabel`` is also embedded in persisted tasks, so it is a pydantic
model rather than a dataclass.

Example:
    Converting a GraphQL issue node::

        issue = UpdatedIssue(
            id=node["id"],
            number=node["number"],
            title=node["title"],
            updated_at=parse_datetime(node["updatedAt"]),
            labels=[IssueLabel(name=l["name"], color=l["color"]) for l in labels],
        )
"""

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class IssueLabel(BaseModel):
    """A label attached to a working group issue."""

    model_config = ConfigDict(frozen=True)

    name: str
    color: str
    """Six hex digits without the leading ``#``, as GitHub reports it."""


@dataclass(frozen=True)
class RepositoryRef:
    """An ``owner/name`` pair addressing a GitHub repository."""

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "RepositoryRef":
        """Split ``owner/name`` into a reference.

        Raises:
            ValueError: If the value is not exactly two non-empty parts.
        """
        owner, sep, name = value.partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"expected 'owner/repo', got {value!r}")
        return cls(owner=owner, name=name)

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class UpdatedIssue:
    """An issue returned by an "updated since" query."""

    id: str
    """GraphQL node ID, used as the target of mutations."""

    number: int
    """Repository-scoped issue number (e.g., #42)."""

    title: str

    updated_at: datetime
    """Timestamp of the most recent update; drives the watermarks."""

    labels: list[IssueLabel] = field(default_factory=list)


@dataclass
class IssueComment:
    """A comment on an issue."""

    url: str
    """Permalink to the comment; the idempotence key for resolutions."""

    created_at: datetime

    body_text: str
    """Rendered plain text of the comment."""


@dataclass
class RepoLabel:
    """A label defined on a repository."""

    id: str
    name: str


@dataclass
class IssueContent:
    """Title, body and web URL of a single issue."""

    title: str
    body: str
    url: str
