"""Data structures describing a publish-as-pull-request operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal


ContentType = Literal["utf8", "base64"]


class ArtifactKind(str, Enum):
    """Credential-ecosystem documents that can be published to the governance repository."""

    VCT = "vct"
    JSON_SCHEMA = "json-schema"
    JSONLD_CONTEXT = "jsonld-context"
    ENTITY_REGISTRY = "entity-registry"
    VOCAB_BATCH = "vocab-batch"
    PROOF_TEMPLATE = "proof-template"
    HARMONIZATION_MAPPINGS = "harmonization-mappings"


class PublishState(str, Enum):
    """Steps of the publish workflow. ``FAILED`` is reachable from any step."""

    PLANNING = "planning"
    BASE_RESOLVED = "base_resolved"
    BRANCH_CREATED = "branch_created"
    FILES_WRITTEN = "files_written"
    PR_CREATED = "pr_created"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class RepoRef:
    """Owner/name pair identifying a remote repository."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(slots=True, frozen=True)
class RepoFile:
    """A single document destined for the repository."""

    path: str
    content: bytes
    content_type: ContentType = "utf8"


@dataclass(slots=True)
class ArtifactPayload:
    """Editor output handed to the planner.

    ``content`` is serialised as-is when it is a string and as indented JSON
    otherwise. ``items`` is only used by vocabulary batches, where each item
    carries its own ``name``/``content``/``filename``.
    """

    content: Any = None
    filename: str | None = None
    name: str | None = None
    category: str | None = None
    details: list[str] = field(default_factory=list)
    items: list["ArtifactPayload"] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class PublishOptions:
    """Caller overrides for generated messages and the base branch."""

    commit_message: str | None = None
    pr_title: str | None = None
    pr_body: str | None = None
    base_branch_override: str | None = None


@dataclass(slots=True)
class PublishRequest:
    """Planned set of files for one user action, consumed once by the orchestrator."""

    artifact_kind: ArtifactKind
    files: list[RepoFile]
    author_handle: str
    slug: str
    display_name: str
    commit_message: str | None = None
    pr_title: str | None = None
    pr_body: str | None = None
    details: list[str] = field(default_factory=list)
    item_names: list[str] = field(default_factory=list)

    @property
    def paths(self) -> list[str]:
        return [repo_file.path for repo_file in self.files]

    def duplicate_paths(self) -> list[str]:
        """Return paths that appear more than once, in first-seen order."""

        seen: set[str] = set()
        duplicates: list[str] = []
        for path in self.paths:
            if path in seen and path not in duplicates:
                duplicates.append(path)
            seen.add(path)
        return duplicates


@dataclass(slots=True, frozen=True)
class BaseBranchResolution:
    """Branch a working branch forks from, with its head commit at resolution time."""

    branch_name: str
    head_commit_sha: str


@dataclass(slots=True, frozen=True)
class FileWriteOutcome:
    """Create-vs-update decision for one path."""

    path: str
    previous_sha: str | None = None

    @property
    def is_update(self) -> bool:
        return self.previous_sha is not None


@dataclass(slots=True, frozen=True)
class RemoteFile:
    """File content and blob SHA read from the remote repository."""

    path: str
    sha: str
    content: bytes


@dataclass(slots=True, frozen=True)
class GitCommit:
    sha: str
    tree_sha: str


@dataclass(slots=True, frozen=True)
class TreeEntry:
    path: str
    sha: str
    mode: str = "100644"
    type: str = "blob"

    def as_dict(self) -> dict[str, str]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}


@dataclass(slots=True, frozen=True)
class PullRequestInfo:
    number: int
    url: str
    title: str


@dataclass(slots=True, frozen=True)
class PublishResult:
    """Outcome returned after the pull request has been opened."""

    pr_number: int
    pr_url: str
    pr_title: str
    branch_name: str
    file_paths: tuple[str, ...]
    base_branch: str
    is_update: bool = False
    vdr_uri: str | None = None
    published_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        """Serialise the result using the JSON shape returned to the UI."""

        return {
            "success": True,
            "pr": {"number": self.pr_number, "url": self.pr_url, "title": self.pr_title},
            "branch": self.branch_name,
            "baseBranch": self.base_branch,
            "file": self.file_paths[0] if self.file_paths else None,
            "files": list(self.file_paths),
            "isUpdate": self.is_update,
            "vdrUri": self.vdr_uri,
        }
