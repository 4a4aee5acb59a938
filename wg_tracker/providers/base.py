"""
Abstract base classes for providers.

The engine talks to two remote systems: GitHub, holding both the working
group and decisions repositories, and a bug tracker. Each is reached only
through the interfaces below, so tasks can be exercised against fakes.

All methods are async. Paginated queries are drained completely before
returning, so a task that awaits one either gets the full result or an
exception.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from wg_tracker.models.domain import IssueComment, IssueContent, RepoLabel, RepositoryRef, UpdatedIssue


class IssueProvider(ABC):
    """Issue, comment and label operations on GitHub-style repositories.

    Mutations address objects by node ID (``repo_id``, ``item_id``), the
    way GitHub's GraphQL API does.
    """

    @abstractmethod
    async def updated_issues(self, repo: RepositoryRef, since: datetime) -> list[UpdatedIssue]:
        """Retrieve every issue updated at or after ``since``, with labels.

        Returns:
            Issues ordered by ``updated_at`` ascending.

        Raises:
            NotFoundError: If the repository does not exist.
            NetworkError: If the request could not be made.
            ResponseError: If the remote reported errors.
        """
        pass

    @abstractmethod
    async def issue_comments(self, repo: RepositoryRef, number: int) -> list[IssueComment]:
        """Retrieve all comments on an issue, oldest first.

        Raises:
            NotFoundError: If the repository or issue does not exist.
        """
        pass

    @abstractmethod
    async def repo_labels(self, repo: RepositoryRef) -> list[RepoLabel]:
        """Retrieve every label defined on a repository."""
        pass

    @abstractmethod
    async def repo_id(self, repo: RepositoryRef) -> str | None:
        """Get a repository's node ID, or None if it does not exist."""
        pass

    @abstractmethod
    async def create_label(self, repo_id: str, name: str, color: str) -> str:
        """Create a label and return its node ID."""
        pass

    @abstractmethod
    async def create_issue(self, repo_id: str, title: str, body: str, label_ids: list[str]) -> str:
        """Create an issue and return its node ID."""
        pass

    @abstractmethod
    async def remove_labels(self, item_id: str, label_ids: list[str]) -> None:
        """Remove labels from an issue."""
        pass

    @abstractmethod
    async def close_issue(self, item_id: str) -> None:
        pass

    @abstractmethod
    async def add_comment(self, item_id: str, body: str) -> None:
        pass

    @abstractmethod
    async def issue_content(self, repo: RepositoryRef, number: int) -> IssueContent:
        """Get title, body and web URL of an issue.

        Raises:
            NotFoundError: If the repository or issue does not exist.
        """
        pass


class BugTracker(ABC):
    """Bug tracker that accepts new tickets."""

    @abstractmethod
    async def file_bug(
        self,
        product: str,
        component: str,
        summary: str,
        description: str,
        urls: list[str],
    ) -> str:
        """File a ticket.

        Args:
            product: Bug tracker product
            component: Component within ``product``
            summary: One-line summary
            description: Initial comment text
            urls: Related links (the decision issue and its references)

        Returns:
            Web URL of the new ticket.
        """
        pass
