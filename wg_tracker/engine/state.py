"""
Engine state for the tracker pipeline.

The state is everything one run needs to pick up where the previous run
stopped. It has two shapes:

- ``EngineState``: the runtime object tasks mutate. It holds the pending
  queue, the staging list, the idempotence ledgers, the two watermarks and
  two lookup caches that are never persisted.
- ``StateSnapshot``: the persisted subset, validated by pydantic. Restoring
  a snapshot always leaves the caches empty; tasks that need them stage a
  loader and resubmit themselves.

Step Semantics:
    Each ``step()`` first moves the staging list to the front of the pending
    queue (keeping its order), then runs the front task. Work produced by a
    task therefore runs before that task's older siblings, giving a
    depth-first walk of the generated work.

    A task that raises is put back at the front of the queue. Anything it
    staged before failing is kept, so every task must tolerate its own
    children already being queued when it runs again.

Example:
    >>> state = EngineState.fresh(datetime(2024, 1, 1, tzinfo=UTC))
    >>> state.schedule_polls()
    >>> while not state.is_finished():
    ...     await state.step(executor)
    ...     await state_manager.save(state)
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from wg_tracker.engine.tasks import PollDecisionIssues, PollWGIssues, Task, describe

if TYPE_CHECKING:
    from wg_tracker.engine.executor import TaskExecutor

log = structlog.get_logger(__name__)


class StateSnapshot(BaseModel):
    """Persisted form of ``EngineState``."""

    pending_queue: list[Task] = Field(default_factory=list)
    staging_list: list[Task] = Field(default_factory=list)
    handled_comment_urls: list[str] = Field(default_factory=list)
    handled_decision_issue_numbers: list[int] = Field(default_factory=list)
    wg_watermark: datetime
    decisions_watermark: datetime


class EngineState:
    """Mutable pipeline state.

    Attributes:
        pending_queue: Tasks ready to run, front first.
        staging_list: Tasks produced since the last step, merged into the
            front of ``pending_queue`` at the start of the next step.
        handled_comment_urls: Comments whose resolutions were already
            turned into decision issue work. Only grows.
        handled_decision_issue_numbers: Decision issues whose bug work was
            already queued. Only grows.
        label_cache: Decisions repository label name to node ID. Not
            persisted; None until ``LoadDecisionLabels`` runs.
        decisions_repo_id: Node ID of the decisions repository. Not
            persisted; None until ``LoadDecisionsRepoId`` runs.
        wg_watermark: Latest ``updatedAt`` seen polling the working group
            repository.
        decisions_watermark: Latest ``updatedAt`` seen polling the
            decisions repository.
    """

    def __init__(
        self,
        wg_watermark: datetime,
        decisions_watermark: datetime,
        pending_queue: list[Task] | None = None,
        staging_list: list[Task] | None = None,
        handled_comment_urls: set[str] | None = None,
        handled_decision_issue_numbers: set[int] | None = None,
    ) -> None:
        self.pending_queue: deque[Task] = deque(pending_queue or [])
        self.staging_list: list[Task] = list(staging_list or [])
        self.handled_comment_urls: set[str] = set(handled_comment_urls or ())
        self.handled_decision_issue_numbers: set[int] = set(handled_decision_issue_numbers or ())
        self.label_cache: dict[str, str] | None = None
        self.decisions_repo_id: str | None = None
        self.wg_watermark = wg_watermark
        self.decisions_watermark = decisions_watermark

    @classmethod
    def fresh(cls, start: datetime) -> EngineState:
        """Create the state of a first-ever run, both watermarks at ``start``."""
        return cls(wg_watermark=start, decisions_watermark=start)

    @classmethod
    def from_snapshot(cls, snapshot: StateSnapshot) -> EngineState:
        return cls(
            wg_watermark=snapshot.wg_watermark,
            decisions_watermark=snapshot.decisions_watermark,
            pending_queue=snapshot.pending_queue,
            staging_list=snapshot.staging_list,
            handled_comment_urls=set(snapshot.handled_comment_urls),
            handled_decision_issue_numbers=set(snapshot.handled_decision_issue_numbers),
        )

    def to_snapshot(self) -> StateSnapshot:
        """Capture the persisted fields. Ledgers are sorted for stable output."""
        return StateSnapshot(
            pending_queue=list(self.pending_queue),
            staging_list=list(self.staging_list),
            handled_comment_urls=sorted(self.handled_comment_urls),
            handled_decision_issue_numbers=sorted(self.handled_decision_issue_numbers),
            wg_watermark=self.wg_watermark,
            decisions_watermark=self.decisions_watermark,
        )

    def stage(self, task: Task) -> None:
        """Queue follow-on work; it runs ahead of everything already pending."""
        self.staging_list.append(task)

    def schedule_polls(self) -> None:
        """Queue one poll of each repository from the current watermarks.

        A poll identical to one still waiting from an earlier run is not
        queued again, so a task that keeps failing does not pile up polls
        behind it.
        """
        waiting = [*self.staging_list, *self.pending_queue]
        scheduled = 0
        for poll in (PollWGIssues(since=self.wg_watermark), PollDecisionIssues(since=self.decisions_watermark)):
            if poll in waiting:
                continue
            self.pending_queue.append(poll)
            scheduled += 1
        log.info(
            "polls_scheduled",
            scheduled=scheduled,
            wg_since=self.wg_watermark.isoformat(),
            decisions_since=self.decisions_watermark.isoformat(),
        )

    def advance_wg_watermark(self, seen: datetime) -> None:
        if seen > self.wg_watermark:
            log.debug("watermark_advanced", source="wg", to=seen.isoformat())
            self.wg_watermark = seen

    def advance_decisions_watermark(self, seen: datetime) -> None:
        if seen > self.decisions_watermark:
            log.debug("watermark_advanced", source="decisions", to=seen.isoformat())
            self.decisions_watermark = seen

    def is_finished(self) -> bool:
        return not self.pending_queue and not self.staging_list

    async def step(self, executor: TaskExecutor) -> None:
        """Run the next task.

        Does nothing when no work is left. If the task raises, it is
        requeued at the front and the exception propagates; tasks it
        staged before failing stay staged.
        """
        if self.staging_list:
            self.pending_queue.extendleft(reversed(self.staging_list))
            self.staging_list.clear()

        if not self.pending_queue:
            return

        task = self.pending_queue.popleft()
        try:
            await executor.execute(task, self)
        except Exception:
            self.pending_queue.appendleft(task)
            log.warning("task_failed", remaining=len(self.pending_queue), **describe(task))
            raise

        log.info("task_completed", staged=len(self.staging_list), **describe(task))
