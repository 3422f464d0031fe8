"""Resolve the branch a publish forks from and is merged back into."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from credtools.models.publisher import BaseBranchResolution, PublishState, RepoRef
from credtools.services.errors import BaseBranchUnresolvable, RemoteError

logger = logging.getLogger(__name__)


class SupportsBranchLookup(Protocol):
    """Subset of :class:`GitHubClient` needed to resolve a base branch."""

    def get_default_branch(self, repo: RepoRef) -> str:
        """Return the repository's default branch name."""

    def get_branch_head_sha(self, repo: RepoRef, branch: str) -> str:
        """Return the commit SHA the branch points at."""


@dataclass(slots=True)
class BaseBranchResolver:
    """Pick the explicit override when given, else the remote default branch."""

    client: SupportsBranchLookup

    def resolve(self, repo: RepoRef, override: str | None = None) -> BaseBranchResolution:
        branch_name = (override or "").strip()
        try:
            if not branch_name:
                branch_name = self.client.get_default_branch(repo)
            head_sha = self.client.get_branch_head_sha(repo, branch_name)
        except RemoteError as exc:
            logger.warning(
                "Base branch could not be resolved",
                extra={"event": "publish.base_unresolvable", "repo": repo.full_name, "branch": branch_name or None},
            )
            raise BaseBranchUnresolvable.from_remote(
                "Unable to resolve base branch", exc, state=PublishState.PLANNING
            ) from exc

        return BaseBranchResolution(branch_name=branch_name, head_commit_sha=head_sha)
