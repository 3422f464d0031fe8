"""Map editor output onto repository paths and detect pre-existing files."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Protocol

from credtools.config import Settings
from credtools.models.publisher import (
    ArtifactKind,
    ArtifactPayload,
    BaseBranchResolution,
    FileWriteOutcome,
    PublishRequest,
    PublishState,
    RemoteFile,
    RepoFile,
    RepoRef,
)
from credtools.services.errors import FileWriteFailed, InvalidPublishRequest, RemoteError
from credtools.utils.text import slugify, strip_known_extension, with_extension

logger = logging.getLogger(__name__)


class SupportsFileLookup(Protocol):
    """Subset of :class:`GitHubClient` used for create-vs-update detection."""

    def get_file(self, repo: RepoRef, path: str, ref: str | None = None) -> RemoteFile | None:
        """Return the remote file or ``None`` when it does not exist."""


@dataclass(slots=True, frozen=True)
class ArtifactConvention:
    """Where an artifact kind lives in the governance repository."""

    kind: ArtifactKind
    branch_prefix: str
    extension: str
    folder: str | None = None
    singleton_path: str | None = None

    def path_for(self, filename: str) -> str:
        if self.singleton_path:
            return self.singleton_path
        return f"{self.folder}/{filename}" if self.folder else filename


def conventions_from_settings(settings: Settings) -> dict[ArtifactKind, ArtifactConvention]:
    return {
        ArtifactKind.VCT: ArtifactConvention(ArtifactKind.VCT, "vct", ".json", folder=settings.vct_folder),
        ArtifactKind.JSON_SCHEMA: ArtifactConvention(
            ArtifactKind.JSON_SCHEMA, "schema", ".json", folder=settings.schema_folder
        ),
        ArtifactKind.JSONLD_CONTEXT: ArtifactConvention(
            ArtifactKind.JSONLD_CONTEXT, "context", ".jsonld", folder=settings.context_folder
        ),
        ArtifactKind.ENTITY_REGISTRY: ArtifactConvention(
            ArtifactKind.ENTITY_REGISTRY, "entity", ".json", singleton_path=settings.entity_registry_path
        ),
        ArtifactKind.VOCAB_BATCH: ArtifactConvention(
            ArtifactKind.VOCAB_BATCH, "vocab", ".json", folder=settings.vocab_folder
        ),
        ArtifactKind.PROOF_TEMPLATE: ArtifactConvention(
            ArtifactKind.PROOF_TEMPLATE, "proof-template", ".json", folder=settings.proof_template_folder
        ),
        ArtifactKind.HARMONIZATION_MAPPINGS: ArtifactConvention(
            ArtifactKind.HARMONIZATION_MAPPINGS,
            "harmonization",
            ".json",
            singleton_path=settings.harmonization_path,
        ),
    }


def serialise_content(content: Any) -> bytes:
    """Encode ``content`` as UTF-8, rendering non-strings as 2-space indented JSON."""

    if content is None:
        raise InvalidPublishRequest("Content is required", state=PublishState.PLANNING)
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    return json.dumps(content, indent=2, ensure_ascii=False).encode("utf-8")


def _validate_filename(filename: str) -> str:
    cleaned = filename.strip()
    if not cleaned or "/" in cleaned or "\\" in cleaned or ".." in cleaned:
        raise InvalidPublishRequest(f"Invalid filename: {filename!r}", state=PublishState.PLANNING)
    return cleaned


def _derive_stem(name: str | None, category: str | None) -> str:
    slug = slugify(name)
    if not slug:
        raise InvalidPublishRequest("A filename or name is required", state=PublishState.PLANNING)
    category_slug = slugify(category)
    return f"{category_slug}-{slug}" if category_slug else slug


def _proof_template_stem(name: str | None, category: str | None) -> str:
    """Return ``<category>-<slug>`` with the category kept verbatim."""

    slug = slugify(name)
    if not slug:
        raise InvalidPublishRequest("A proof template name is required", state=PublishState.PLANNING)
    raw_category = (category or "").strip() or "general"
    if "/" in raw_category or "\\" in raw_category or ".." in raw_category:
        raise InvalidPublishRequest(f"Invalid category: {category!r}", state=PublishState.PLANNING)
    return f"{raw_category}-{slug}"


class ArtifactPlanner:
    """Compute target paths and encoded content for each artifact kind."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._conventions = conventions_from_settings(settings or Settings())

    def convention(self, kind: ArtifactKind) -> ArtifactConvention:
        return self._conventions[kind]

    def plan(self, kind: ArtifactKind, payload: ArtifactPayload, *, author_handle: str) -> PublishRequest:
        kind = ArtifactKind(kind)
        if kind is ArtifactKind.VOCAB_BATCH:
            request = self._plan_vocabulary(payload, author_handle=author_handle)
        else:
            request = self._plan_single(kind, payload, author_handle=author_handle)
        self.validate(request)
        return request

    def filename_for(self, kind: ArtifactKind, payload: ArtifactPayload) -> str:
        """Return the canonical filename for a single-file artifact."""

        convention = self._conventions[kind]
        if convention.singleton_path:
            return convention.singleton_path.rsplit("/", 1)[-1]
        if kind is ArtifactKind.PROOF_TEMPLATE:
            return f"{_proof_template_stem(payload.name, payload.category)}{convention.extension}"
        if payload.filename and payload.filename.strip():
            return with_extension(_validate_filename(payload.filename), convention.extension)
        return f"{_derive_stem(payload.name, payload.category)}{convention.extension}"

    @staticmethod
    def validate(request: PublishRequest) -> None:
        if not request.files:
            raise InvalidPublishRequest("At least one file is required", state=PublishState.PLANNING)
        duplicates = request.duplicate_paths()
        if duplicates:
            raise InvalidPublishRequest(
                f"Duplicate paths in publish request: {', '.join(duplicates)}", state=PublishState.PLANNING
            )

    def detect_existing(
        self,
        client: SupportsFileLookup,
        repo: RepoRef,
        request: PublishRequest,
        base: BaseBranchResolution,
    ) -> list[FileWriteOutcome]:
        """Look up each path on the base branch; a miss means the file will be created."""

        outcomes: list[FileWriteOutcome] = []
        for repo_file in request.files:
            try:
                existing = client.get_file(repo, repo_file.path, ref=base.branch_name)
            except RemoteError as exc:
                raise FileWriteFailed.from_remote(
                    f"Unable to check {repo_file.path}", exc, state=PublishState.BASE_RESOLVED
                ) from exc
            outcomes.append(FileWriteOutcome(path=repo_file.path, previous_sha=existing.sha if existing else None))
        return outcomes

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _plan_single(self, kind: ArtifactKind, payload: ArtifactPayload, *, author_handle: str) -> PublishRequest:
        convention = self._conventions[kind]
        filename = self.filename_for(kind, payload)
        path = convention.path_for(filename)
        display_name = filename
        if kind is ArtifactKind.PROOF_TEMPLATE and payload.name:
            display_name = payload.name.strip()

        return PublishRequest(
            artifact_kind=kind,
            files=[RepoFile(path=path, content=serialise_content(payload.content))],
            author_handle=author_handle,
            slug=slugify(strip_known_extension(filename)) or convention.branch_prefix,
            display_name=display_name,
            details=list(payload.details),
        )

    def _plan_vocabulary(self, payload: ArtifactPayload, *, author_handle: str) -> PublishRequest:
        convention = self._conventions[ArtifactKind.VOCAB_BATCH]
        if not payload.items:
            raise InvalidPublishRequest("At least one vocabulary item is required", state=PublishState.PLANNING)

        files: list[RepoFile] = []
        names: list[str] = []
        for item in payload.items:
            if item.filename and item.filename.strip():
                filename = with_extension(_validate_filename(item.filename), convention.extension)
            else:
                filename = f"{_derive_stem(item.name, item.category)}{convention.extension}"
            files.append(RepoFile(path=convention.path_for(filename), content=serialise_content(item.content)))
            names.append((item.name or strip_known_extension(filename)).strip())

        slug = slugify(names[0]) if len(names) == 1 else f"{len(names)}-types"
        return PublishRequest(
            artifact_kind=ArtifactKind.VOCAB_BATCH,
            files=files,
            author_handle=author_handle,
            slug=slug or convention.branch_prefix,
            display_name=names[0] if len(names) == 1 else f"{len(names)} vocabulary types",
            details=list(payload.details),
            item_names=names,
        )


__all__ = ["ArtifactConvention", "ArtifactPlanner", "conventions_from_settings", "serialise_content"]
