"""
Snapshot persistence for the engine state.

This module provides the StateManager class which saves the engine state
after every step and restores it at the start of the next run. Integrity
comes from two things:

- Atomic file writes using a temporary file and a rename
- A version line in front of the document, checked on every load

Snapshot File Structure:
    ``<state_dir>/state`` holds a decimal version number on its first line,
    followed by a JSON document::

        2
        {
          "pending_queue": [{"type": "ensure_label", "name": "[spec] css-grid", ...}],
          "staging_list": [],
          "handled_comment_urls": ["https://github.com/w3c/drafts/issues/1#issuecomment-9"],
          "handled_decision_issue_numbers": [17],
          "wg_watermark": "2024-01-15T10:30:00Z",
          "decisions_watermark": "2024-01-15T09:00:00Z"
        }

    The label cache and repository ID are never written; they are rebuilt
    on demand after every restore.

Versions:
    - 2: current layout, above.
    - 1: working-group-only layout (``tasks``, ``posted_tasks``,
      ``handled_wg_comments``, ``last_time_wg``) with CamelCase task tags.
      Loaded by migrating to version 2: the decisions watermark starts at
      the working group watermark and the decision ledger starts empty.

    Any other version is refused rather than guessed at.

Example:
    >>> manager = StateManager(".wg-tracker")
    >>> state = await manager.load(settings.start_time)
    >>> state.schedule_polls()
    >>> await manager.save(state)
"""

import json
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import structlog

from wg_tracker.engine.state import EngineState, StateSnapshot
from wg_tracker.exceptions import SnapshotParseError

log = structlog.get_logger(__name__)

CURRENT_VERSION = 2

# Task tags of the version 1 layout and the fields that were renamed since
_V1_TASK_TYPES: dict[str, tuple[str, dict[str, str]]] = {
    "QueryWGIssuesTask": ("poll_wg_issues", {}),
    "QueryWGIssueCommentsTask": ("fetch_issue_comments", {"number": "issue_number"}),
    "ProcessWGCommentTask": ("process_comment", {}),
    "QueryDecisionsKnownLabelsTask": ("load_decision_labels", {}),
    "EnsureLabelTask": ("ensure_label", {}),
    "QueryDecisionsRepoID": ("load_decisions_repo_id", {}),
    "FileIssueTask": ("file_decision_issue", {"issue_labels": "labels"}),
}


def _migrate_v1_task(task: dict[str, Any]) -> dict[str, Any]:
    fields = dict(task)
    tag = fields.pop("type", None)
    if tag not in _V1_TASK_TYPES:
        raise SnapshotParseError(f"unknown task type {tag!r} in state file v1")
    new_tag, renames = _V1_TASK_TYPES[tag]
    migrated = {renames.get(key, key): value for key, value in fields.items()}
    migrated["type"] = new_tag
    return migrated


def _from_v1(data: dict[str, Any]) -> StateSnapshot:
    watermark = data["last_time_wg"]
    return StateSnapshot.model_validate(
        {
            "pending_queue": [_migrate_v1_task(task) for task in data.get("tasks", [])],
            "staging_list": [_migrate_v1_task(task) for task in data.get("posted_tasks", [])],
            "handled_comment_urls": data.get("handled_wg_comments", []),
            "handled_decision_issue_numbers": [],
            "wg_watermark": watermark,
            "decisions_watermark": watermark,
        }
    )


def _from_v2(data: dict[str, Any]) -> StateSnapshot:
    return StateSnapshot.model_validate(data)


_READERS: dict[int, Callable[[dict[str, Any]], StateSnapshot]] = {
    1: _from_v1,
    2: _from_v2,
}


def parse_snapshot(contents: str) -> StateSnapshot:
    """Parse snapshot file contents.

    Args:
        contents: Full text of a snapshot file.

    Returns:
        The snapshot, migrated to the current layout.

    Raises:
        SnapshotParseError: If the version line is missing or not a
            number, the version is unknown, or the document is invalid.
    """
    version_text, newline, document = contents.partition("\n")
    if not newline:
        raise SnapshotParseError("could not find version number in state file")

    version_text = version_text.strip()
    if not version_text.isdigit():
        raise SnapshotParseError(f"could not parse version number in state file: {version_text!r}")

    version = int(version_text)
    reader = _READERS.get(version)
    if reader is None:
        raise SnapshotParseError(f"unknown state file version number {version}")

    try:
        data = json.loads(document)
    except json.JSONDecodeError as e:
        raise SnapshotParseError(f"could not parse state file v{version}") from e
    if not isinstance(data, dict):
        raise SnapshotParseError(f"could not parse state file v{version}: expected an object")

    try:
        return reader(data)
    except (KeyError, TypeError, ValueError) as e:
        raise SnapshotParseError(f"could not parse state file v{version}") from e


def render_snapshot(state: EngineState) -> str:
    """Serialize the persisted part of ``state`` in the current layout."""
    return f"{CURRENT_VERSION}\n{state.to_snapshot().model_dump_json(indent=2)}\n"


class StateManager:
    """Load and save the engine state snapshot.

    Attributes:
        state_dir: Directory holding the snapshot, its temporary file and
            the process lock file.
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the state manager with a storage directory.

        Creates the directory, including parents, if it does not exist.
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

    @property
    def snapshot_path(self) -> Path:
        return self.state_dir / "state"

    @property
    def temp_path(self) -> Path:
        return self.state_dir / "state.tmp"

    @property
    def lock_path(self) -> Path:
        return self.state_dir / "lock"

    async def load(self, start: datetime) -> EngineState:
        """Restore the engine state, or create a fresh one.

        Args:
            start: Watermark for a first-ever run.

        Returns:
            The restored state with empty caches, or a fresh state if no
            snapshot exists yet.

        Raises:
            SnapshotParseError: If the snapshot exists but cannot be parsed.
            OSError: If the snapshot cannot be read.
        """
        if not self.snapshot_path.exists():
            log.info("state_created", start=start.isoformat())
            return EngineState.fresh(start)

        async with aiofiles.open(self.snapshot_path) as f:
            contents = await f.read()

        state = EngineState.from_snapshot(parse_snapshot(contents))
        log.info(
            "state_restored",
            pending=len(state.pending_queue),
            staged=len(state.staging_list),
            wg_watermark=state.wg_watermark.isoformat(),
            decisions_watermark=state.decisions_watermark.isoformat(),
        )
        return state

    async def save(self, state: EngineState) -> None:
        """Write the snapshot atomically.

        The snapshot is written to ``state.tmp`` first and then renamed over
        ``state``. On POSIX the rename is atomic within a filesystem, so a
        reader sees either the old snapshot or the new one, never a mix.

        Raises:
            OSError: If writing or renaming fails.
        """
        async with aiofiles.open(self.temp_path, "w") as f:
            await f.write(render_snapshot(state))

        self.temp_path.replace(self.snapshot_path)
