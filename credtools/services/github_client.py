"""Typed wrapper over the GitHub REST endpoints used by the publish workflow."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from credtools.config import DEFAULT_API_URL, DEFAULT_TIMEOUT
from credtools.models.identity import SessionIdentity
from credtools.models.publisher import (
    ContentType,
    GitCommit,
    PullRequestInfo,
    RemoteFile,
    RepoRef,
    TreeEntry,
)
from credtools.services.errors import (
    BranchAlreadyExists,
    BranchNotFound,
    RemoteError,
    RemoteUnavailable,
    RepoNotFound,
    WriteConflict,
)

LOGGER = logging.getLogger(__name__)


def _quote_path(path: str) -> str:
    return quote(path.strip("/"), safe="/")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, Mapping) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class GitHubClient:
    """Perform exactly one GitHub API call per method; no retries."""

    _DEFAULT_HEADERS: Mapping[str, str] = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "CredentialDesignTools/1.0",
    }

    def __init__(
        self,
        token: str | None = None,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        headers = dict(self._DEFAULT_HEADERS)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._token = token
        self._client = client or httpx.Client(base_url=api_url.rstrip("/"), headers=headers, timeout=timeout)
        if client is not None:
            self._client.headers.update(headers)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Publish primitives
    # ------------------------------------------------------------------
    def get_default_branch(self, repo: RepoRef) -> str:
        response = self._request("GET", f"/repos/{repo.full_name}", operation="get_default_branch")
        if response.status_code == 404:
            raise RepoNotFound(
                f"Repository {repo.full_name} not found", status_code=404, operation="get_default_branch"
            )
        payload = self._json(response, operation="get_default_branch")
        return str(payload["default_branch"])

    def get_branch_head_sha(self, repo: RepoRef, branch: str) -> str:
        response = self._request(
            "GET",
            f"/repos/{repo.full_name}/git/ref/heads/{_quote_path(branch)}",
            operation="get_branch_head_sha",
        )
        if response.status_code == 404:
            raise BranchNotFound(f"Branch {branch} not found", status_code=404, operation="get_branch_head_sha")
        payload = self._json(response, operation="get_branch_head_sha")
        return str(payload["object"]["sha"])

    def create_branch(self, repo: RepoRef, branch: str, from_sha: str) -> None:
        response = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": from_sha},
            operation="create_branch",
        )
        if response.status_code in (409, 422):
            raise BranchAlreadyExists(
                f"Branch {branch} already exists: {_error_message(response)}",
                status_code=response.status_code,
                operation="create_branch",
            )
        self._json(response, operation="create_branch")

    def get_file(self, repo: RepoRef, path: str, ref: str | None = None) -> RemoteFile | None:
        """Return the file at ``path`` or ``None`` when it does not exist on ``ref``."""

        params = {"ref": ref} if ref else None
        response = self._request(
            "GET",
            f"/repos/{repo.full_name}/contents/{_quote_path(path)}",
            params=params,
            operation="get_file",
        )
        if response.status_code == 404:
            return None
        payload = self._json(response, operation="get_file")
        if not isinstance(payload, Mapping) or payload.get("type", "file") != "file":
            raise RemoteError(f"{path} is not a file", status_code=response.status_code, operation="get_file")
        raw_content = payload.get("content") or ""
        content = base64.b64decode(raw_content) if payload.get("encoding", "base64") == "base64" else raw_content.encode()
        return RemoteFile(path=str(payload.get("path") or path), sha=str(payload["sha"]), content=content)

    def write_file(
        self,
        repo: RepoRef,
        path: str,
        content: bytes,
        message: str,
        branch: str,
        previous_sha: str | None = None,
    ) -> str:
        """Create or update ``path`` on ``branch`` and return the new blob SHA."""

        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if previous_sha:
            body["sha"] = previous_sha
        response = self._request(
            "PUT",
            f"/repos/{repo.full_name}/contents/{_quote_path(path)}",
            json=body,
            operation="write_file",
        )
        if response.status_code == 409:
            raise WriteConflict(
                f"{path} changed remotely: {_error_message(response)}", status_code=409, operation="write_file"
            )
        payload = self._json(response, operation="write_file")
        return str(payload["content"]["sha"])

    def create_pull_request(self, repo: RepoRef, title: str, body: str, head: str, base: str) -> PullRequestInfo:
        response = self._request(
            "POST",
            f"/repos/{repo.full_name}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
            operation="create_pull_request",
        )
        payload = self._json(response, operation="create_pull_request")
        return PullRequestInfo(number=int(payload["number"]), url=str(payload["html_url"]), title=str(payload["title"]))

    # ------------------------------------------------------------------
    # Git data API (multi-file commits)
    # ------------------------------------------------------------------
    def create_blob(self, repo: RepoRef, content: bytes, encoding: ContentType = "utf8") -> str:
        """Upload ``content`` as a blob; bytes that are not valid UTF-8 are sent as base64."""

        body: dict[str, str] | None = None
        if encoding == "utf8":
            try:
                body = {"content": content.decode("utf-8"), "encoding": "utf-8"}
            except UnicodeDecodeError:
                LOGGER.debug("Blob is not UTF-8, sending base64", extra={"event": "github.blob_base64"})
        if body is None:
            body = {"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"}
        response = self._request("POST", f"/repos/{repo.full_name}/git/blobs", json=body, operation="create_blob")
        return str(self._json(response, operation="create_blob")["sha"])

    def get_commit(self, repo: RepoRef, sha: str) -> GitCommit:
        response = self._request("GET", f"/repos/{repo.full_name}/git/commits/{sha}", operation="get_commit")
        payload = self._json(response, operation="get_commit")
        return GitCommit(sha=str(payload["sha"]), tree_sha=str(payload["tree"]["sha"]))

    def create_tree(self, repo: RepoRef, base_tree: str, entries: Sequence[TreeEntry]) -> str:
        response = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/trees",
            json={"base_tree": base_tree, "tree": [entry.as_dict() for entry in entries]},
            operation="create_tree",
        )
        return str(self._json(response, operation="create_tree")["sha"])

    def create_commit_on_tree(self, repo: RepoRef, message: str, tree_sha: str, parents: Sequence[str]) -> str:
        response = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/commits",
            json={"message": message, "tree": tree_sha, "parents": list(parents)},
            operation="create_commit_on_tree",
        )
        return str(self._json(response, operation="create_commit_on_tree")["sha"])

    # ------------------------------------------------------------------
    # Library and identity helpers
    # ------------------------------------------------------------------
    def list_directory(self, repo: RepoRef, path: str, ref: str | None = None) -> list[dict[str, Any]]:
        """Return directory entries, or an empty list when the folder is missing."""

        params = {"ref": ref} if ref else None
        response = self._request(
            "GET",
            f"/repos/{repo.full_name}/contents/{_quote_path(path)}",
            params=params,
            operation="list_directory",
        )
        if response.status_code == 404:
            return []
        payload = self._json(response, operation="list_directory")
        if not isinstance(payload, list):
            return []
        return [dict(item) for item in payload if isinstance(item, Mapping)]

    def get_authenticated_user(self) -> SessionIdentity:
        response = self._request("GET", "/user", operation="get_authenticated_user")
        payload = self._json(response, operation="get_authenticated_user")
        return SessionIdentity.from_github_user(payload, token=self._token or "")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        json: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        try:
            return self._client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as exc:
            LOGGER.warning("GitHub %s timed out", operation, extra={"event": "github.timeout", "operation": operation})
            raise RemoteUnavailable(f"GitHub request timed out: {exc}", operation=operation) from exc
        except httpx.TransportError as exc:
            LOGGER.warning(
                "GitHub %s unreachable: %s", operation, exc, extra={"event": "github.unavailable", "operation": operation}
            )
            raise RemoteUnavailable(f"GitHub unreachable: {exc}", operation=operation) from exc

    @staticmethod
    def _json(response: httpx.Response, *, operation: str) -> Any:
        if response.status_code >= 500:
            raise RemoteUnavailable(
                _error_message(response), status_code=response.status_code, operation=operation
            )
        if response.status_code >= 400:
            raise RemoteError(_error_message(response), status_code=response.status_code, operation=operation)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                f"Invalid JSON returned by GitHub for {operation}",
                status_code=response.status_code,
                operation=operation,
            ) from exc


__all__ = ["GitHubClient"]
