"""Exceptions raised by the GitHub client and the publish workflow."""

from __future__ import annotations

from credtools.models.publisher import PublishState


class RemoteError(RuntimeError):
    """A GitHub API call failed.

    ``status_code`` is ``None`` for transport failures (DNS, TLS, timeouts).
    """

    def __init__(self, message: str, *, status_code: int | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.operation = operation


class RemoteUnavailable(RemoteError):
    """The remote could not be reached or did not answer in time."""


class RepoNotFound(RemoteError):
    pass


class BranchNotFound(RemoteError):
    pass


class BranchAlreadyExists(RemoteError):
    pass


class WriteConflict(RemoteError):
    """The ``previous_sha`` sent with a write no longer matches the remote file."""


class PublishError(RuntimeError):
    """Base class for failures of the publish workflow.

    Carries the workflow ``state`` the failure occurred in and, when the
    failure originated remotely, the remote status code and message.
    """

    error_kind = "PublishError"

    def __init__(
        self,
        message: str,
        *,
        state: PublishState = PublishState.FAILED,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.status_code = status_code
        self.cause = cause

    @classmethod
    def from_remote(cls, prefix: str, error: RemoteError, *, state: PublishState) -> "PublishError":
        return cls(f"{prefix}: {error.message}", state=state, status_code=error.status_code, cause=error)

    def as_detail(self) -> dict[str, object]:
        return {"message": self.message, "error": self.error_kind, "remoteStatus": self.status_code}


class InvalidPublishRequest(PublishError, ValueError):
    error_kind = "InvalidPublishRequest"


class BaseBranchUnresolvable(PublishError):
    error_kind = "BaseBranchUnresolvable"


class BranchCreateFailed(PublishError):
    error_kind = "BranchCreateFailed"


class FileWriteFailed(PublishError):
    error_kind = "FileWriteFailed"


class FileWriteConflict(FileWriteFailed):
    error_kind = "Conflict"


class PullRequestCreateFailed(PublishError):
    error_kind = "PullRequestCreateFailed"


__all__ = [
    "BaseBranchUnresolvable",
    "BranchAlreadyExists",
    "BranchCreateFailed",
    "BranchNotFound",
    "FileWriteConflict",
    "FileWriteFailed",
    "InvalidPublishRequest",
    "PublishError",
    "PullRequestCreateFailed",
    "RemoteError",
    "RemoteUnavailable",
    "RepoNotFound",
    "WriteConflict",
]
