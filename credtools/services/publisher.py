"""Publish artifacts to the governance repository as pull requests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Protocol

from credtools.config import Settings
from credtools.models.publisher import (
    ArtifactKind,
    ArtifactPayload,
    BaseBranchResolution,
    ContentType,
    FileWriteOutcome,
    GitCommit,
    PublishOptions,
    PublishRequest,
    PublishResult,
    PublishState,
    PullRequestInfo,
    RemoteFile,
    RepoRef,
    TreeEntry,
)
from credtools.services.base_branch import BaseBranchResolver
from credtools.services.errors import (
    BranchCreateFailed,
    FileWriteConflict,
    FileWriteFailed,
    PublishError,
    PullRequestCreateFailed,
    RemoteError,
    WriteConflict,
)
from credtools.services.messages import default_title, render_pr_body
from credtools.services.planner import ArtifactPlanner

logger = logging.getLogger(__name__)

MarkPublished = Callable[[str, str, datetime], object]
Clock = Callable[[], datetime]


class SupportsRemoteRepository(Protocol):
    """GitHub operations the orchestrator relies on (see :class:`GitHubClient`)."""

    def get_default_branch(self, repo: RepoRef) -> str: ...

    def get_branch_head_sha(self, repo: RepoRef, branch: str) -> str: ...

    def create_branch(self, repo: RepoRef, branch: str, from_sha: str) -> None: ...

    def get_file(self, repo: RepoRef, path: str, ref: str | None = None) -> RemoteFile | None: ...

    def write_file(
        self,
        repo: RepoRef,
        path: str,
        content: bytes,
        message: str,
        branch: str,
        previous_sha: str | None = None,
    ) -> str: ...

    def create_pull_request(self, repo: RepoRef, title: str, body: str, head: str, base: str) -> PullRequestInfo: ...

    def create_blob(self, repo: RepoRef, content: bytes, encoding: ContentType = "utf8") -> str: ...

    def get_commit(self, repo: RepoRef, sha: str) -> GitCommit: ...

    def create_tree(self, repo: RepoRef, base_tree: str, entries: Sequence[TreeEntry]) -> str: ...

    def create_commit_on_tree(self, repo: RepoRef, message: str, tree_sha: str, parents: Sequence[str]) -> str: ...


# Batch publishes commit before branching, so FILES_WRITTEN may precede BRANCH_CREATED.
_TRANSITIONS: dict[PublishState, frozenset[PublishState]] = {
    PublishState.PLANNING: frozenset({PublishState.BASE_RESOLVED}),
    PublishState.BASE_RESOLVED: frozenset({PublishState.BRANCH_CREATED, PublishState.FILES_WRITTEN}),
    PublishState.BRANCH_CREATED: frozenset({PublishState.FILES_WRITTEN, PublishState.PR_CREATED}),
    PublishState.FILES_WRITTEN: frozenset({PublishState.BRANCH_CREATED, PublishState.PR_CREATED}),
    PublishState.PR_CREATED: frozenset({PublishState.DONE}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BranchSequence:
    """Strictly increasing millisecond stamps shared by every orchestrator holding it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_millis = 0

    def claim(self, millis: int) -> int:
        with self._lock:
            if millis <= self._last_millis:
                millis = self._last_millis + 1
            self._last_millis = millis
        return millis


# Orchestrators are built per request, so branch stamps are guarded process-wide.
SHARED_BRANCH_SEQUENCE = BranchSequence()


@dataclass(slots=True)
class PublishRun:
    """Mutable progress of a single publish; discarded once a result or error is produced."""

    request: PublishRequest
    options: PublishOptions = field(default_factory=PublishOptions)
    state: PublishState = PublishState.PLANNING
    history: list[PublishState] = field(default_factory=lambda: [PublishState.PLANNING])
    base: BaseBranchResolution | None = None
    outcomes: list[FileWriteOutcome] = field(default_factory=list)
    branch_name: str | None = None
    commit_sha: str | None = None
    files_written: bool = False
    pull_request: PullRequestInfo | None = None

    @property
    def is_update(self) -> bool:
        return any(outcome.is_update for outcome in self.outcomes)

    def previous_sha(self, path: str) -> str | None:
        return next((outcome.previous_sha for outcome in self.outcomes if outcome.path == path), None)


class PublishOrchestrator:
    """Resolve base, create branch, write files, open PR, with one method per transition."""

    def __init__(
        self,
        client: SupportsRemoteRepository,
        *,
        settings: Settings | None = None,
        planner: ArtifactPlanner | None = None,
        resolver: BaseBranchResolver | None = None,
        clock: Clock | None = None,
        sequence: BranchSequence | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or Settings()
        self._planner = planner or ArtifactPlanner(self._settings)
        self._resolver = resolver or BaseBranchResolver(client)
        self._clock = clock or _utcnow
        self._repo = RepoRef(self._settings.repo_owner, self._settings.repo_name)
        self._sequence = sequence or SHARED_BRANCH_SEQUENCE

    @property
    def planner(self) -> ArtifactPlanner:
        return self._planner

    @property
    def repo(self) -> RepoRef:
        return self._repo

    def publish(
        self,
        kind: ArtifactKind,
        payload: ArtifactPayload,
        options: PublishOptions | None = None,
        *,
        author_handle: str,
        record_id: str | None = None,
        mark_published: MarkPublished | None = None,
    ) -> PublishResult:
        """Plan ``payload`` for ``kind`` and publish it, returning the opened pull request."""

        request = self._planner.plan(kind, payload, author_handle=author_handle)
        if request.artifact_kind is ArtifactKind.VOCAB_BATCH:
            return self.publish_batch(request, options, record_id=record_id, mark_published=mark_published)
        return self.execute(request, options, record_id=record_id, mark_published=mark_published)

    def execute(
        self,
        request: PublishRequest,
        options: PublishOptions | None = None,
        *,
        record_id: str | None = None,
        mark_published: MarkPublished | None = None,
    ) -> PublishResult:
        """Run the single-commit-per-file workflow for an already planned request."""

        self._planner.validate(request)
        run = PublishRun(request=request, options=options or PublishOptions())
        try:
            self.resolve_base(run, detect_existing=True)
            assert run.base is not None
            self.create_working_branch(run, from_sha=run.base.head_commit_sha)
            self.write_files(run)
            self.open_pull_request(run)
        except PublishError as exc:
            self._fail(run, exc)
            raise
        return self.complete(run, record_id=record_id, mark_published=mark_published)

    def publish_batch(
        self,
        request: PublishRequest,
        options: PublishOptions | None = None,
        *,
        record_id: str | None = None,
        mark_published: MarkPublished | None = None,
    ) -> PublishResult:
        """Commit every file of ``request`` in one tree/commit, then branch and open the PR."""

        self._planner.validate(request)
        run = PublishRun(request=request, options=options or PublishOptions())
        try:
            self.resolve_base(run, detect_existing=False)
            self.commit_batch(run)
            assert run.commit_sha is not None
            self.create_working_branch(run, from_sha=run.commit_sha)
            self.open_pull_request(run)
        except PublishError as exc:
            self._fail(run, exc)
            raise
        return self.complete(run, record_id=record_id, mark_published=mark_published)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def resolve_base(self, run: PublishRun, *, detect_existing: bool = True) -> BaseBranchResolution:
        """PLANNING -> BASE_RESOLVED."""

        override = run.options.base_branch_override or self._settings.base_branch
        base = self._resolver.resolve(self._repo, override)
        run.base = base
        self._advance(run, PublishState.BASE_RESOLVED)
        if detect_existing:
            run.outcomes = self._planner.detect_existing(self._client, self._repo, run.request, base)
        return base

    def create_working_branch(self, run: PublishRun, *, from_sha: str) -> str:
        """Create the timestamped working branch pointing at ``from_sha``."""

        branch_name = self.branch_name_for(run.request, is_update=run.is_update)
        try:
            self._client.create_branch(self._repo, branch_name, from_sha)
        except RemoteError as exc:
            raise BranchCreateFailed.from_remote(
                f"Unable to create branch {branch_name}", exc, state=run.state
            ) from exc
        run.branch_name = branch_name
        self._advance(run, PublishState.BRANCH_CREATED)
        return branch_name

    def write_files(self, run: PublishRun) -> list[FileWriteOutcome]:
        """BRANCH_CREATED -> FILES_WRITTEN, one sequential write per file in list order."""

        if run.branch_name is None:
            raise RuntimeError("Working branch must exist before files are written")
        message = self._commit_message(run)
        for repo_file in run.request.files:
            previous_sha = run.previous_sha(repo_file.path)
            try:
                self._client.write_file(
                    self._repo,
                    repo_file.path,
                    repo_file.content,
                    message,
                    run.branch_name,
                    previous_sha=previous_sha,
                )
            except WriteConflict as exc:
                raise FileWriteConflict.from_remote(
                    f"Stale write to {repo_file.path}", exc, state=run.state
                ) from exc
            except RemoteError as exc:
                raise FileWriteFailed.from_remote(f"Unable to write {repo_file.path}", exc, state=run.state) from exc
            logger.info(
                "File written",
                extra={
                    "event": "publish.file_written",
                    "path": repo_file.path,
                    "is_update": previous_sha is not None,
                    "branch": run.branch_name,
                },
            )
        if not run.outcomes:
            run.outcomes = [FileWriteOutcome(path=path) for path in run.request.paths]
        run.files_written = True
        self._advance(run, PublishState.FILES_WRITTEN)
        return list(run.outcomes)

    def commit_batch(self, run: PublishRun) -> str:
        """BASE_RESOLVED -> FILES_WRITTEN via blobs, one tree and one commit."""

        if run.base is None:
            raise RuntimeError("Base branch must be resolved before committing")
        message = self._commit_message(run)
        try:
            # Entries overlay base_tree: existing paths are replaced, everything else is kept.
            base_commit = self._client.get_commit(self._repo, run.base.head_commit_sha)
            entries = [
                TreeEntry(
                    path=repo_file.path,
                    sha=self._client.create_blob(self._repo, repo_file.content, repo_file.content_type),
                )
                for repo_file in run.request.files
            ]
            tree_sha = self._client.create_tree(self._repo, base_commit.tree_sha, entries)
            commit_sha = self._client.create_commit_on_tree(
                self._repo, message, tree_sha, [run.base.head_commit_sha]
            )
        except RemoteError as exc:
            raise FileWriteFailed.from_remote("Unable to build batch commit", exc, state=run.state) from exc

        run.commit_sha = commit_sha
        run.outcomes = [FileWriteOutcome(path=path) for path in run.request.paths]
        run.files_written = True
        self._advance(run, PublishState.FILES_WRITTEN)
        return commit_sha

    def open_pull_request(self, run: PublishRun) -> PullRequestInfo:
        """Open the PR from the working branch into the resolved base -> PR_CREATED."""

        if run.base is None or run.branch_name is None or not run.files_written:
            raise RuntimeError("Branch and files must exist before opening a pull request")
        title = run.options.pr_title or run.request.pr_title or default_title(run.request, is_update=run.is_update)
        body = (
            run.options.pr_body
            or run.request.pr_body
            or render_pr_body(run.request, is_update=run.is_update, app_url=self._settings.app_url)
        )
        try:
            pull_request = self._client.create_pull_request(
                self._repo, title, body, head=run.branch_name, base=run.base.branch_name
            )
        except RemoteError as exc:
            raise PullRequestCreateFailed.from_remote(
                "Unable to create pull request", exc, state=run.state
            ) from exc
        run.pull_request = pull_request
        self._advance(run, PublishState.PR_CREATED)
        return pull_request

    def complete(
        self,
        run: PublishRun,
        *,
        record_id: str | None = None,
        mark_published: MarkPublished | None = None,
    ) -> PublishResult:
        """PR_CREATED -> DONE, recording publication on the caller's record when asked."""

        if run.pull_request is None or run.base is None or run.branch_name is None:
            raise RuntimeError("Pull request must exist before the publish completes")

        published_at = self._clock()
        paths = tuple(run.request.paths)
        vdr_uri = self._settings.vdr_uri(paths[0])
        result = PublishResult(
            pr_number=run.pull_request.number,
            pr_url=run.pull_request.url,
            pr_title=run.pull_request.title,
            branch_name=run.branch_name,
            file_paths=paths,
            base_branch=run.base.branch_name,
            is_update=run.is_update,
            vdr_uri=vdr_uri,
            published_at=published_at,
        )
        self._advance(run, PublishState.DONE)
        logger.info(
            "Pull request opened",
            extra={
                "event": "publish.done",
                "kind": run.request.artifact_kind.value,
                "pr_number": result.pr_number,
                "branch": result.branch_name,
            },
        )

        if mark_published is not None and record_id is not None:
            try:
                mark_published(record_id, vdr_uri, published_at)
            except Exception:
                logger.exception(
                    "Recording publication failed; pull request stands",
                    extra={"event": "publish.mark_published_failed", "record_id": record_id},
                )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def branch_name_for(self, request: PublishRequest, *, is_update: bool) -> str:
        prefix = self._planner.convention(request.artifact_kind).branch_prefix
        action = "update" if is_update else "add"
        return f"{prefix}/{action}-{request.slug}-{self._next_millis()}"

    def _next_millis(self) -> int:
        return self._sequence.claim(int(self._clock().timestamp() * 1000))

    def _commit_message(self, run: PublishRun) -> str:
        return (
            run.options.commit_message
            or run.request.commit_message
            or default_title(run.request, is_update=run.is_update)
        )

    def _advance(self, run: PublishRun, state: PublishState) -> None:
        if state not in _TRANSITIONS.get(run.state, frozenset()):
            raise RuntimeError(f"Invalid publish transition {run.state.value} -> {state.value}")
        run.state = state
        run.history.append(state)
        logger.debug(
            "Publish state changed",
            extra={"event": "publish.state", "state": state.value, "kind": run.request.artifact_kind.value},
        )

    @staticmethod
    def _fail(run: PublishRun, error: PublishError) -> None:
        failed_in = run.state
        run.state = PublishState.FAILED
        run.history.append(PublishState.FAILED)
        logger.warning(
            "Publish failed: %s",
            error.message,
            extra={
                "event": "publish.failed",
                "kind": run.request.artifact_kind.value,
                "error": error.error_kind,
                "failed_in": failed_in.value,
                "remote_status": error.status_code,
                "branch": run.branch_name,
            },
        )


__all__ = [
    "SHARED_BRANCH_SEQUENCE",
    "BranchSequence",
    "MarkPublished",
    "PublishOrchestrator",
    "PublishRun",
    "SupportsRemoteRepository",
]
