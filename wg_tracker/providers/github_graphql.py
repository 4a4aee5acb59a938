"""GitHub provider implementation using the GraphQL v4 API over httpx."""

from datetime import datetime
from typing import Any

import httpx
import structlog

from wg_tracker.exceptions import NetworkError, NotFoundError, ResponseError
from wg_tracker.models.domain import (
    IssueComment,
    IssueContent,
    IssueLabel,
    RepoLabel,
    RepositoryRef,
    UpdatedIssue,
)
from wg_tracker.providers.base import IssueProvider

log = structlog.get_logger(__name__)

PAGE_SIZE = 100

# Label mutations were once behind a schema preview; the header is harmless now.
LABEL_PREVIEW_ACCEPT = "application/vnd.github.bane-preview+json"

UPDATED_ISSUES_QUERY = """
query($owner: String!, $name: String!, $since: DateTime!, $after: String) {
  repository(owner: $owner, name: $name) {
    issues(first: 100, after: $after, filterBy: {since: $since},
           orderBy: {field: UPDATED_AT, direction: ASC}) {
      pageInfo { hasNextPage endCursor }
      nodes {
        id
        number
        title
        updatedAt
        labels(first: 100) { nodes { name color } }
      }
    }
  }
}
"""

ISSUE_COMMENTS_QUERY = """
query($owner: String!, $name: String!, $number: Int!, $after: String) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) {
      comments(first: 100, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes { url createdAt bodyText }
      }
    }
  }
}
"""

REPO_LABELS_QUERY = """
query($owner: String!, $name: String!, $after: String) {
  repository(owner: $owner, name: $name) {
    labels(first: 100, after: $after) {
      pageInfo { hasNextPage endCursor }
      nodes { id name }
    }
  }
}
"""

REPO_ID_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id }
}
"""

ISSUE_CONTENT_QUERY = """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    issue(number: $number) { title body url }
  }
}
"""

CREATE_LABEL_MUTATION = """
mutation($repoId: ID!, $name: String!, $color: String!) {
  createLabel(input: {repositoryId: $repoId, name: $name, color: $color}) {
    label { id }
  }
}
"""

CREATE_ISSUE_MUTATION = """
mutation($repoId: ID!, $title: String!, $body: String, $labelIds: [ID!]) {
  createIssue(input: {repositoryId: $repoId, title: $title, body: $body, labelIds: $labelIds}) {
    issue { id }
  }
}
"""

REMOVE_LABELS_MUTATION = """
mutation($itemId: ID!, $labelIds: [ID!]!) {
  removeLabelsFromLabelable(input: {labelableId: $itemId, labelIds: $labelIds}) {
    clientMutationId
  }
}
"""

CLOSE_ISSUE_MUTATION = """
mutation($itemId: ID!) {
  closeIssue(input: {issueId: $itemId}) { issue { id } }
}
"""

ADD_COMMENT_MUTATION = """
mutation($itemId: ID!, $body: String!) {
  addComment(input: {subjectId: $itemId, body: $body}) { clientMutationId }
}
"""


def parse_datetime(value: str) -> datetime:
    """Parse a GitHub ``DateTime`` scalar (ISO 8601, ``Z`` suffix)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubGraphQLProvider(IssueProvider):
    """GitHub implementation using the GraphQL API."""

    def __init__(
        self,
        token: str,
        client: httpx.AsyncClient,
        api_url: str = "https://api.github.com/graphql",
    ):
        """Initialize GitHub provider.

        Args:
            token: GitHub personal access token or App token
            client: HTTP client shared with the other providers of a run
            api_url: GraphQL endpoint (for GitHub Enterprise)
        """
        self.token = token.strip() if token else token
        self.api_url = api_url
        self._client = client

    async def updated_issues(self, repo: RepositoryRef, since: datetime) -> list[UpdatedIssue]:
        """Retrieve issues updated since a timestamp."""
        log.info("updated_issues", repo=str(repo), since=since.isoformat())

        nodes = await self._paginate(
            UPDATED_ISSUES_QUERY,
            {"owner": repo.owner, "name": repo.name, "since": since.isoformat()},
            ("repository", "issues"),
        )
        return [self._convert_issue(node) for node in nodes]

    async def issue_comments(self, repo: RepositoryRef, number: int) -> list[IssueComment]:
        """Retrieve all comments on an issue."""
        log.info("issue_comments", repo=str(repo), number=number)

        nodes = await self._paginate(
            ISSUE_COMMENTS_QUERY,
            {"owner": repo.owner, "name": repo.name, "number": number},
            ("repository", "issue", "comments"),
        )
        return [
            IssueComment(
                url=node["url"],
                created_at=parse_datetime(node["createdAt"]),
                body_text=node["bodyText"] or "",
            )
            for node in nodes
        ]

    async def repo_labels(self, repo: RepositoryRef) -> list[RepoLabel]:
        """Retrieve all labels of a repository."""
        log.info("repo_labels", repo=str(repo))

        nodes = await self._paginate(
            REPO_LABELS_QUERY,
            {"owner": repo.owner, "name": repo.name},
            ("repository", "labels"),
        )
        return [RepoLabel(id=node["id"], name=node["name"]) for node in nodes]

    async def repo_id(self, repo: RepositoryRef) -> str | None:
        """Get repository node ID."""
        log.info("repo_id", repo=str(repo))

        data = await self._execute(
            REPO_ID_QUERY,
            {"owner": repo.owner, "name": repo.name},
            allow_not_found=True,
        )
        repository = data.get("repository")
        return repository["id"] if repository else None

    async def create_label(self, repo_id: str, name: str, color: str) -> str:
        """Create a label."""
        log.info("create_label", name=name, color=color)

        data = await self._execute(
            CREATE_LABEL_MUTATION,
            {"repoId": repo_id, "name": name, "color": color},
            accept=LABEL_PREVIEW_ACCEPT,
        )
        label = (data.get("createLabel") or {}).get("label")
        if not label:
            raise ResponseError(f"label creation failed: {name}")
        return label["id"]

    async def create_issue(self, repo_id: str, title: str, body: str, label_ids: list[str]) -> str:
        """Create a new issue."""
        log.info("create_issue", title=title, labels=len(label_ids))

        data = await self._execute(
            CREATE_ISSUE_MUTATION,
            {"repoId": repo_id, "title": title, "body": body, "labelIds": label_ids},
        )
        issue = (data.get("createIssue") or {}).get("issue")
        if not issue:
            raise ResponseError(f"issue creation failed: {title}")
        return issue["id"]

    async def remove_labels(self, item_id: str, label_ids: list[str]) -> None:
        """Remove labels from an issue."""
        log.info("remove_labels", item_id=item_id, labels=label_ids)

        await self._execute(
            REMOVE_LABELS_MUTATION,
            {"itemId": item_id, "labelIds": label_ids},
            accept=LABEL_PREVIEW_ACCEPT,
        )

    async def close_issue(self, item_id: str) -> None:
        log.info("close_issue", item_id=item_id)
        await self._execute(CLOSE_ISSUE_MUTATION, {"itemId": item_id})

    async def add_comment(self, item_id: str, body: str) -> None:
        log.info("add_comment", item_id=item_id)
        await self._execute(ADD_COMMENT_MUTATION, {"itemId": item_id, "body": body})

    async def issue_content(self, repo: RepositoryRef, number: int) -> IssueContent:
        """Get issue title, body and URL."""
        log.info("issue_content", repo=str(repo), number=number)

        data = await self._execute(ISSUE_CONTENT_QUERY, {"owner": repo.owner, "name": repo.name, "number": number})
        issue = self._walk(data, ("repository", "issue"))
        return IssueContent(title=issue["title"], body=issue["body"] or "", url=issue["url"])

    async def _paginate(
        self,
        query: str,
        variables: dict[str, Any],
        path: tuple[str, ...],
    ) -> list[dict[str, Any]]:
        """Run a connection query until every page has been read.

        Args:
            query: Query taking an ``$after`` cursor variable
            variables: Variables other than ``after``
            path: Keys leading from ``data`` to the connection object

        Returns:
            All ``nodes`` of the connection, in page order.
        """
        nodes: list[dict[str, Any]] = []
        after: str | None = None

        while True:
            data = await self._execute(query, {**variables, "after": after})
            connection = self._walk(data, path)
            nodes.extend(node for node in connection.get("nodes") or [] if node)

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            after = page_info.get("endCursor")
            log.debug("github_next_page", path=".".join(path), fetched=len(nodes))

        return nodes

    @staticmethod
    def _walk(data: dict[str, Any], path: tuple[str, ...]) -> dict[str, Any]:
        current: Any = data
        for key in path:
            current = current.get(key) if isinstance(current, dict) else None
            if current is None:
                raise NotFoundError(f"{key} not found")
        return current

    async def _execute(
        self,
        query: str,
        variables: dict[str, Any],
        accept: str | None = None,
        allow_not_found: bool = False,
    ) -> dict[str, Any]:
        """POST a GraphQL document and return its ``data`` object.

        Raises:
            NetworkError: If the request could not be completed.
            ResponseError: On HTTP error status, GraphQL errors or a
                response without data.
        """
        headers = {"Authorization": f"Bearer {self.token}"}
        if accept:
            headers["Accept"] = accept

        try:
            response = await self._client.post(
                self.api_url,
                json={"query": query, "variables": variables},
                headers=headers,
            )
        except httpx.HTTPError as e:
            log.error("github_request_failed", error=str(e))
            raise NetworkError("could not perform network request") from e

        if response.status_code >= 400:
            log.error("github_http_error", status=response.status_code)
            raise ResponseError(
                "GitHub request failed",
                status_code=response.status_code,
                response_text=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ResponseError("could not parse response", response_text=response.text) from e

        errors = payload.get("errors")
        if errors and not (allow_not_found and all(err.get("type") == "NOT_FOUND" for err in errors)):
            log.error("github_graphql_errors", errors=errors)
            raise ResponseError(f"errors in response: {errors}")

        data = payload.get("data")
        if data is None:
            raise ResponseError("no data in response")
        return data

    def _convert_issue(self, node: dict[str, Any]) -> UpdatedIssue:
        """Convert a GraphQL issue node to our UpdatedIssue model."""
        label_nodes = (node.get("labels") or {}).get("nodes") or []
        return UpdatedIssue(
            id=node["id"],
            number=node["number"],
            title=node["title"],
            updated_at=parse_datetime(node["updatedAt"]),
            labels=[IssueLabel(name=label["name"], color=label["color"]) for label in label_nodes if label],
        )
