"""
Task execution for the tracker pipeline.

``TaskExecutor`` maps every task type to a handler coroutine. Handlers read
the task, call the remote providers, and record results in the engine
state: new work is staged, ledgers and caches are updated, watermarks are
advanced. Handlers never catch remote errors; a failing task is requeued by
``EngineState.step`` and retried on a later run.

Re-execution Safety:
    A failed task may already have staged some children, and those survive
    the failure. When the task runs again it can stage them a second time.
    Handlers are written so that this is harmless:

    - Ledger checks happen before any staging, so a second pass of
      ``ProcessComment`` or ``PollDecisionIssues`` over the same input
      produces nothing once the first pass recorded it.
    - ``EnsureLabel`` checks the label cache before creating.
    - Loader tasks only merge into caches.

Dependency Deferral:
    ``EnsureLabel``, ``FileDecisionIssue`` and ``RemoveBugLabel`` need the
    transient caches. When a cache is empty they stage its loader, stage
    themselves again behind it, and finish successfully. Each suspension is
    therefore a persisted task, and a crash at any point resumes cleanly.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from wg_tracker.config.policy import SPEC_LABEL_PREFIX, RepoPolicy
from wg_tracker.config.settings import TrackerSettings
from wg_tracker.engine.state import EngineState
from wg_tracker.engine.tasks import (
    TASK_TYPES,
    AddIssueComment,
    CloseIssue,
    EnsureLabel,
    FetchIssueComments,
    FileBug,
    FileBugWithDetails,
    FileDecisionIssue,
    LoadDecisionLabels,
    LoadDecisionsRepoId,
    PollDecisionIssues,
    PollWGIssues,
    ProcessComment,
    RemoveBugLabel,
    Task,
)
from wg_tracker.exceptions import NotFoundError, PolicyError
from wg_tracker.providers.base import BugTracker, IssueProvider
from wg_tracker.utils.markdown import escape_markdown, extract_resolutions, extract_urls, truncate_at_separator

log = structlog.get_logger(__name__)

BUG_LABEL = "bug"

DECISION_ISSUE_TRAILER = (
    "To file a bug automatically for these resolutions, add the **bug** label to the issue.\n"
    "\n"
    "If no bug is needed, the issue can be closed."
)

Handler = Callable[[Any, EngineState], Awaitable[None]]


def render_decision_body(
    wg_repo_name: str,
    issue_number: int,
    issue_url: str,
    issue_title: str,
    comment_url: str,
    resolutions: list[str],
) -> str:
    """Build the markdown body of a decision issue.

    Titles and resolutions are markdown-escaped. Everything after the
    ``----`` line is boilerplate that ``FileBug`` strips again.
    """
    lead = "A resolution was" if len(resolutions) == 1 else "Resolutions were"
    resolution_lines = "\n".join(f"* RESOLVED: {escape_markdown(resolution)}" for resolution in resolutions)
    return (
        f"{lead} made for [{wg_repo_name}/#{issue_number}]({issue_url}).\n"
        "\n"
        f"**{escape_markdown(issue_title)}**\n"
        "\n"
        f"{resolution_lines}\n"
        "\n"
        f"[Discussion.]({comment_url})\n"
        "\n"
        "----\n"
        "\n"
        f"{DECISION_ISSUE_TRAILER}"
    )


class TaskExecutor:
    """Run tasks against the remote providers.

    Attributes:
        git: GitHub provider for both repositories.
        bugs: Bug tracker provider.
        settings: Tracker settings (repositories, URLs).
        policy: Decisions repository policy (labels, components).
    """

    def __init__(
        self,
        git: IssueProvider,
        bugs: BugTracker,
        settings: TrackerSettings,
        policy: RepoPolicy,
    ) -> None:
        self.git = git
        self.bugs = bugs
        self.settings = settings
        self.policy = policy

        self._handlers: dict[type, Handler] = {
            PollWGIssues: self._poll_wg_issues,
            FetchIssueComments: self._fetch_issue_comments,
            ProcessComment: self._process_comment,
            PollDecisionIssues: self._poll_decision_issues,
            LoadDecisionLabels: self._load_decision_labels,
            EnsureLabel: self._ensure_label,
            FileDecisionIssue: self._file_decision_issue,
            LoadDecisionsRepoId: self._load_decisions_repo_id,
            FileBug: self._file_bug,
            FileBugWithDetails: self._file_bug_with_details,
            RemoveBugLabel: self._remove_bug_label,
            CloseIssue: self._close_issue,
            AddIssueComment: self._add_issue_comment,
        }

        unhandled = set(TASK_TYPES) ^ set(self._handlers)
        if unhandled:
            raise TypeError(f"dispatch table out of sync with task types: {sorted(t.__name__ for t in unhandled)}")

    async def execute(self, task: Task, state: EngineState) -> None:
        """Run one task, mutating ``state``.

        Raises:
            WgTrackerError: Any remote or policy failure of the task.
        """
        handler = self._handlers[type(task)]
        await handler(task, state)

    def _defer_until_loaded(
        self,
        task: Task,
        state: EngineState,
        labels: bool = True,
        repo_id: bool = True,
    ) -> bool:
        """Stage missing cache loaders followed by ``task`` itself.

        Returns:
            True if the task was deferred and should return immediately.
        """
        loaders: list[Task] = []
        if labels and state.label_cache is None:
            loaders.append(LoadDecisionLabels())
        if repo_id and state.decisions_repo_id is None:
            loaders.append(LoadDecisionsRepoId())

        if not loaders:
            return False

        for loader in loaders:
            state.stage(loader)
        state.stage(task)
        log.debug("task_deferred", task=task.type, waiting_for=[loader.type for loader in loaders])
        return True

    # Working group side

    async def _poll_wg_issues(self, task: PollWGIssues, state: EngineState) -> None:
        issues = await self.git.updated_issues(self.settings.wg, task.since)

        for issue in issues:
            state.stage(
                FetchIssueComments(
                    issue_number=issue.number,
                    issue_title=issue.title,
                    issue_labels=issue.labels,
                    since=task.since,
                )
            )

        if issues:
            state.advance_wg_watermark(max(issue.updated_at for issue in issues))
        log.info("wg_issues_polled", count=len(issues), watermark=state.wg_watermark.isoformat())

    async def _fetch_issue_comments(self, task: FetchIssueComments, state: EngineState) -> None:
        comments = await self.git.issue_comments(self.settings.wg, task.issue_number)

        recent = [comment for comment in comments if comment.created_at >= task.since]
        for comment in recent:
            state.stage(
                ProcessComment(
                    issue_number=task.issue_number,
                    issue_title=task.issue_title,
                    issue_labels=task.issue_labels,
                    url=comment.url,
                    body_text=comment.body_text,
                )
            )
        log.debug("issue_comments_fetched", issue_number=task.issue_number, total=len(comments), recent=len(recent))

    async def _process_comment(self, task: ProcessComment, state: EngineState) -> None:
        resolutions = extract_resolutions(task.body_text)
        if not resolutions:
            return

        if task.url in state.handled_comment_urls:
            log.debug("comment_already_handled", url=task.url)
            return
        state.handled_comment_urls.add(task.url)

        desired = self.policy.desired_labels(task.issue_labels)
        label_names = [f"{SPEC_LABEL_PREFIX}{label.name}" for label in desired]

        for label, name in zip(desired, label_names, strict=True):
            state.stage(EnsureLabel(name=name, color=label.color))

        state.stage(
            FileDecisionIssue(
                issue_number=task.issue_number,
                issue_title=task.issue_title,
                labels=label_names,
                comment_url=task.url,
                resolutions=resolutions,
            )
        )
        log.info("resolutions_found", issue_number=task.issue_number, count=len(resolutions), url=task.url)

    # Decisions repository: caches

    async def _load_decision_labels(self, task: LoadDecisionLabels, state: EngineState) -> None:
        labels = await self.git.repo_labels(self.settings.decisions)

        if state.label_cache is None:
            state.label_cache = {}
        for label in labels:
            state.label_cache[label.name] = label.id
        log.info("decision_labels_loaded", count=len(state.label_cache))

    async def _load_decisions_repo_id(self, task: LoadDecisionsRepoId, state: EngineState) -> None:
        repo_id = await self.git.repo_id(self.settings.decisions)
        if repo_id is None:
            raise NotFoundError(f"repository not found: {self.settings.decisions_repo}")
        state.decisions_repo_id = repo_id

    async def _ensure_label(self, task: EnsureLabel, state: EngineState) -> None:
        if self._defer_until_loaded(task, state):
            return
        assert state.label_cache is not None and state.decisions_repo_id is not None

        if task.name in state.label_cache:
            return

        label_id = await self.git.create_label(state.decisions_repo_id, task.name, task.color)
        state.label_cache[task.name] = label_id
        log.info("label_created", name=task.name)

    async def _file_decision_issue(self, task: FileDecisionIssue, state: EngineState) -> None:
        if self._defer_until_loaded(task, state):
            return
        assert state.label_cache is not None and state.decisions_repo_id is not None

        body = render_decision_body(
            wg_repo_name=self.settings.wg.name,
            issue_number=task.issue_number,
            issue_url=f"{self.settings.wg_repo_url()}/issues/{task.issue_number}",
            issue_title=task.issue_title,
            comment_url=task.comment_url,
            resolutions=task.resolutions,
        )
        label_ids = [state.label_cache[name] for name in task.labels if name in state.label_cache]

        await self.git.create_issue(state.decisions_repo_id, task.issue_title, body, label_ids)
        log.info("decision_issue_filed", issue_number=task.issue_number, labels=len(label_ids))

    # Decisions repository: bugs

    async def _poll_decision_issues(self, task: PollDecisionIssues, state: EngineState) -> None:
        issues = await self.git.updated_issues(self.settings.decisions, task.since)

        for issue in issues:
            if issue.number in state.handled_decision_issue_numbers:
                continue
            label_names = [label.name for label in issue.labels]
            if BUG_LABEL not in label_names:
                continue

            product, component = self.policy.component_for(label_names)
            state.handled_decision_issue_numbers.add(issue.number)
            state.stage(FileBug(product=product, component=component, issue_number=issue.number, issue_id=issue.id))
            state.stage(RemoveBugLabel(issue_id=issue.id))
            state.stage(CloseIssue(issue_id=issue.id))
            log.info("bug_requested", issue_number=issue.number, product=product, component=component)

        if issues:
            state.advance_decisions_watermark(max(issue.updated_at for issue in issues))
        log.info("decision_issues_polled", count=len(issues), watermark=state.decisions_watermark.isoformat())

    async def _file_bug(self, task: FileBug, state: EngineState) -> None:
        content = await self.git.issue_content(self.settings.decisions, task.issue_number)

        description = truncate_at_separator(content.body).strip()
        urls = extract_urls(description)
        urls.append(content.url)

        state.stage(
            FileBugWithDetails(
                product=task.product,
                component=task.component,
                summary=content.title,
                description=description,
                urls=urls,
                issue_id=task.issue_id,
            )
        )

    async def _file_bug_with_details(self, task: FileBugWithDetails, state: EngineState) -> None:
        ticket_url = await self.bugs.file_bug(
            task.product,
            task.component,
            task.summary,
            task.description,
            task.urls,
        )
        state.stage(AddIssueComment(issue_id=task.issue_id, body=ticket_url))

    async def _remove_bug_label(self, task: RemoveBugLabel, state: EngineState) -> None:
        if self._defer_until_loaded(task, state, repo_id=False):
            return
        assert state.label_cache is not None

        label_id = state.label_cache.get(BUG_LABEL)
        if label_id is None:
            raise PolicyError(f"label {BUG_LABEL!r} not found in {self.settings.decisions_repo}")

        await self.git.remove_labels(task.issue_id, [label_id])

    async def _close_issue(self, task: CloseIssue, state: EngineState) -> None:
        await self.git.close_issue(task.issue_id)

    async def _add_issue_comment(self, task: AddIssueComment, state: EngineState) -> None:
        await self.git.add_comment(task.issue_id, task.body)
