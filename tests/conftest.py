"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import structlog

from wg_tracker.config.policy import LabelPolicy, RepoPolicy
from wg_tracker.config.settings import TrackerSettings
from wg_tracker.engine.executor import TaskExecutor
from wg_tracker.engine.state import EngineState
from wg_tracker.engine.state_manager import StateManager
from wg_tracker.providers.base import BugTracker, IssueProvider

START = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Keep logging configuration from leaking between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Temporary state directory."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def settings(temp_state_dir: Path) -> TrackerSettings:
    """Tracker settings pointing at test repositories."""
    return TrackerSettings(
        github={"token": "test-token"},
        wg_repo="w3c/csswg-drafts",
        decisions_repo="example/decisions",
        state_directory=str(temp_state_dir),
        start_date="2024-01-01",
        bugzilla={"base_url": "https://bugzilla.test", "api_key": "test-key"},
    )


@pytest.fixture
def policy() -> RepoPolicy:
    """Policy carrying yellow and css- labels, with one component entry."""
    return RepoPolicy(
        labels=LabelPolicy(color="fbca04", prefixes=["css-"]),
        components={"widget": "Widgets :: Core"},
    )


@pytest.fixture
def git() -> AsyncMock:
    """GitHub provider double with empty results."""
    provider = AsyncMock(spec=IssueProvider)
    provider.updated_issues.return_value = []
    provider.issue_comments.return_value = []
    provider.repo_labels.return_value = []
    provider.repo_id.return_value = "R_decisions"
    provider.create_label.return_value = "L_new"
    provider.create_issue.return_value = "I_new"
    return provider


@pytest.fixture
def bugs() -> AsyncMock:
    """Bug tracker double."""
    tracker = AsyncMock(spec=BugTracker)
    tracker.file_bug.return_value = "https://bugzilla.test/show_bug.cgi?id=1001"
    return tracker


@pytest.fixture
def executor(git: AsyncMock, bugs: AsyncMock, settings: TrackerSettings, policy: RepoPolicy) -> TaskExecutor:
    return TaskExecutor(git, bugs, settings, policy)


@pytest.fixture
def state() -> EngineState:
    return EngineState.fresh(START)


@pytest.fixture
def state_manager(temp_state_dir: Path) -> StateManager:
    return StateManager(temp_state_dir)


async def _drain(state: EngineState, executor: TaskExecutor, max_steps: int = 200) -> int:
    steps = 0
    while not state.is_finished():
        await state.step(executor)
        steps += 1
        assert steps <= max_steps, "pipeline did not settle"
    return steps


@pytest.fixture
def drain():
    """Step a state until finished; returns the number of steps taken."""
    return _drain
