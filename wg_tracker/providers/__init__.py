"""Remote providers: GitHub issues and the bug tracker."""

from wg_tracker.providers.base import BugTracker, IssueProvider

__all__ = ["BugTracker", "IssueProvider"]
