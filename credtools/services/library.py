"""Read-only access to artifacts already published in the governance repository."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from credtools.config import Settings
from credtools.models.publisher import ArtifactKind, RemoteFile, RepoRef
from credtools.services.planner import ArtifactPlanner
from credtools.utils.text import with_extension

logger = logging.getLogger(__name__)


class SupportsLibraryLookup(Protocol):
    def list_directory(self, repo: RepoRef, path: str, ref: str | None = None) -> list[dict[str, Any]]: ...

    def get_file(self, repo: RepoRef, path: str, ref: str | None = None) -> RemoteFile | None: ...


class ArtifactLibrary:
    """List, probe and read published files of one artifact kind.

    Lookups use the configured base branch when one is set, otherwise the
    repository's default branch.
    """

    def __init__(
        self,
        client: SupportsLibraryLookup,
        *,
        settings: Settings | None = None,
        planner: ArtifactPlanner | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or Settings()
        self._planner = planner or ArtifactPlanner(self._settings)
        self._repo = RepoRef(self._settings.repo_owner, self._settings.repo_name)

    def folder_for(self, kind: ArtifactKind) -> str:
        convention = self._planner.convention(kind)
        if convention.folder is None:
            raise ValueError(f"{kind.value} artifacts are not stored in a folder")
        return convention.folder

    def list_files(self, kind: ArtifactKind) -> list[dict[str, Any]]:
        """Return the JSON files published for ``kind``; a missing folder yields ``[]``."""

        entries = self._client.list_directory(self._repo, self.folder_for(kind), ref=self._settings.base_branch)
        files = [
            {
                "name": entry.get("name"),
                "path": entry.get("path"),
                "sha": entry.get("sha"),
                "download_url": entry.get("download_url"),
                "uri": self._settings.vdr_uri(str(entry.get("path") or "")),
            }
            for entry in entries
            if entry.get("type") == "file" and str(entry.get("name") or "").endswith(".json")
        ]
        logger.debug("Library listed", extra={"event": "library.list", "kind": kind.value, "count": len(files)})
        return files

    def is_available(self, kind: ArtifactKind, filename: str) -> tuple[bool, str]:
        """Return whether ``filename`` is still free, together with its normalised form."""

        final = with_extension(filename.strip(), ".json")
        existing = self._client.get_file(self._repo, self._path(kind, final), ref=self._settings.base_branch)
        return existing is None, final

    def read(self, kind: ArtifactKind, filename: str) -> dict[str, Any] | None:
        """Return ``{filename, sha, content}`` with decoded JSON content, or ``None`` when missing."""

        remote = self._client.get_file(self._repo, self._path(kind, filename), ref=self._settings.base_branch)
        if remote is None:
            return None
        return {
            "filename": remote.path.rsplit("/", 1)[-1],
            "sha": remote.sha,
            "content": json.loads(remote.content.decode("utf-8")),
        }

    def _path(self, kind: ArtifactKind, filename: str) -> str:
        cleaned = filename.strip()
        if not cleaned or "/" in cleaned or ".." in cleaned:
            raise ValueError(f"Invalid filename: {filename!r}")
        return f"{self.folder_for(kind)}/{cleaned}"


__all__ = ["ArtifactLibrary"]
