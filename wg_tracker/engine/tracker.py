"""
Driver loop for one tracker run.

A run is meant to be started periodically (cron, systemd timer). It:

1. Takes the process lock, or exits quietly if another run holds it
2. Loads the repository policy
3. Restores the engine state (or creates a fresh one)
4. Schedules one poll of each repository
5. Steps until no work is left, saving the snapshot after every step

The snapshot is saved whether or not the step succeeded. On failure the
run stops and the error propagates; the failed task sits at the front of
the queue and is retried first by the next run.
"""

from collections.abc import Awaitable, Callable

import structlog

from wg_tracker.config.policy import RepoPolicy
from wg_tracker.config.settings import TrackerSettings
from wg_tracker.engine.executor import TaskExecutor
from wg_tracker.engine.state import EngineState
from wg_tracker.engine.state_manager import StateManager
from wg_tracker.providers.base import BugTracker, IssueProvider
from wg_tracker.utils.lock import ProcessLock

log = structlog.get_logger(__name__)

PolicyLoader = Callable[[], Awaitable[RepoPolicy]]


class Tracker:
    """Run the task pipeline to completion.

    Attributes:
        settings: Tracker settings.
        git: GitHub provider.
        bugs: Bug tracker provider.
        state_manager: Snapshot persistence.
        steps: Number of steps executed by the last ``run()``.
    """

    def __init__(
        self,
        settings: TrackerSettings,
        git: IssueProvider,
        bugs: BugTracker,
        policy_loader: PolicyLoader,
        state_manager: StateManager | None = None,
    ) -> None:
        self.settings = settings
        self.git = git
        self.bugs = bugs
        self.policy_loader = policy_loader
        self.state_manager = state_manager or StateManager(settings.state_dir)
        self.steps = 0

    async def run(self) -> bool:
        """Execute one run.

        Returns:
            False if another instance holds the lock and nothing was done,
            True once the queue has been drained.

        Raises:
            WgTrackerError: The first task failure, after the snapshot
                reflecting it has been saved.
        """
        lock = ProcessLock(self.state_manager.lock_path)
        if not lock.acquire():
            log.info("tracker_already_running", state_dir=str(self.state_manager.state_dir))
            return False

        try:
            policy = await self.policy_loader()
            state = await self.state_manager.load(self.settings.start_time)
            state.schedule_polls()
            await self.drain(state, TaskExecutor(self.git, self.bugs, self.settings, policy))
        finally:
            lock.release()
        return True

    async def drain(self, state: EngineState, executor: TaskExecutor) -> None:
        """Step ``state`` until it is finished, saving after every step."""
        self.steps = 0
        while True:
            error: Exception | None = None
            try:
                await state.step(executor)
            except Exception as e:
                error = e
            self.steps += 1

            await self.state_manager.save(state)

            if error is not None:
                log.error("tracker_stopped", steps=self.steps, pending=len(state.pending_queue), error=str(error))
                raise error

            if state.is_finished():
                break

        log.info(
            "tracker_finished",
            steps=self.steps,
            handled_comments=len(state.handled_comment_urls),
            handled_decision_issues=len(state.handled_decision_issue_numbers),
        )
