"""Authenticated GitHub identity attached to a request."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(slots=True, frozen=True)
class SessionIdentity:
    """Current user plus the bearer token used for GitHub calls on their behalf."""

    id: str
    login: str
    token: str = field(repr=False)
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.login

    @classmethod
    def from_github_user(cls, payload: Mapping[str, Any], *, token: str) -> "SessionIdentity":
        """Build an identity from a ``GET /user`` response."""

        login = str(payload.get("login") or "").strip()
        if not login:
            raise ValueError("GitHub user payload is missing a login")
        return cls(
            id=str(payload.get("id") or login),
            login=login,
            token=token,
            name=payload.get("name") or None,
            email=payload.get("email") or None,
            avatar_url=payload.get("avatar_url") or None,
        )
