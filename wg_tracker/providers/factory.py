"""Provider factory for creating the remote clients from settings."""

import httpx

from wg_tracker.config.settings import TrackerSettings
from wg_tracker.providers.bugzilla_rest import BugzillaRestProvider
from wg_tracker.providers.github_graphql import GitHubGraphQLProvider


def create_providers(
    settings: TrackerSettings,
    client: httpx.AsyncClient,
) -> tuple[GitHubGraphQLProvider, BugzillaRestProvider]:
    """Create the GitHub and bug tracker providers.

    Both providers share ``client``, so a run opens a single connection
    pool and closes it once.

    Args:
        settings: Tracker settings
        client: HTTP client owned by the caller

    Returns:
        ``(github, bugzilla)`` providers.
    """
    github = GitHubGraphQLProvider(
        token=settings.github.token.get_secret_value(),
        api_url=settings.github.api_url,
        client=client,
    )
    bugzilla = BugzillaRestProvider(
        base_url=settings.bugzilla.base_url,
        api_key=settings.bugzilla.api_key.get_secret_value(),
        client=client,
    )
    return github, bugzilla
