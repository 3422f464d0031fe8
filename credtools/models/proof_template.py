"""Domain models for proof templates stored in the database."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping, Sequence
import uuid


STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
DEFAULT_FORMAT = "presentation-exchange"
DEFAULT_CATEGORY = "general"
DEFAULT_VERSION = "1.0.0"


def _default_datetime() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime | None:
    """Coerce a string/date/datetime value into a timezone-aware UTC datetime."""

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _listify_strings(value: Any) -> list[str]:
    """Normalise a value into a list of non-empty strings."""

    if isinstance(value, str):
        trimmed = value.strip()
        return [trimmed] if trimmed else []

    if isinstance(value, Sequence):
        result: list[str] = []
        for item in value:
            if isinstance(item, str):
                trimmed = item.strip()
                if trimmed:
                    result.append(trimmed)
        return result

    return []


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _text_value(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass(slots=True)
class ClaimConstraint:
    """Predicate, field-match or limit-disclosure rule attached to a claim."""

    type: str
    config: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "config": dict(self.config)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClaimConstraint":
        config = data.get("config")
        return cls(
            id=_text_value(data.get("id")),
            type=_text_value(data.get("type")),
            config=dict(config) if isinstance(config, Mapping) else {},
        )


@dataclass(slots=True)
class Claim:
    """A single attribute a verifier asks the holder to present."""

    id: str
    name: str
    label: str = ""
    purpose: str = ""
    credential_type: str = ""
    field_path: str = ""
    constraints: list[ClaimConstraint] = field(default_factory=list)
    required: bool = True

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "purpose": self.purpose,
            "credentialType": self.credential_type,
            "fieldPath": self.field_path,
            "constraints": [constraint.to_dict() for constraint in self.constraints],
            "required": self.required,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Claim":
        raw_constraints = data.get("constraints")
        constraints = [
            ClaimConstraint.from_dict(item)
            for item in (raw_constraints if isinstance(raw_constraints, list) else [])
            if isinstance(item, Mapping)
        ]
        name = _text_value(data.get("name"))
        return cls(
            id=_text_value(data.get("id")) or name,
            name=name,
            label=_text_value(data.get("label")),
            purpose=_text_value(data.get("purpose")),
            credential_type=_text_value(data.get("credentialType")),
            field_path=_text_value(data.get("fieldPath")) or name,
            constraints=constraints,
            required=bool(data.get("required", True)),
        )


@dataclass(slots=True)
class ProofTemplate:
    """Representation of a proof template row in the ``proof_templates`` table."""

    name: str
    github_user_id: str
    description: str = ""
    purpose: str = ""
    claims: list[Claim] = field(default_factory=list)
    format: str = DEFAULT_FORMAT
    category: str = DEFAULT_CATEGORY
    version: str = DEFAULT_VERSION
    tags: list[str] = field(default_factory=list)
    status: str = STATUS_DRAFT
    vdr_uri: str | None = None
    github_username: str | None = None
    author_name: str | None = None
    author_email: str | None = None
    cloned_from: str | None = None
    created_at: datetime = field(default_factory=_default_datetime)
    updated_at: datetime = field(default_factory=_default_datetime)
    published_at: datetime | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_published(self) -> bool:
        return self.status == STATUS_PUBLISHED

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "purpose": self.purpose,
            "claims": [claim.to_dict() for claim in self.claims],
            "format": self.format,
            "category": self.category,
            "version": self.version,
            "tags": list(self.tags),
            "status": self.status,
            "vdrUri": self.vdr_uri,
            "githubUserId": self.github_user_id,
            "githubUsername": self.github_username,
            "authorName": self.author_name,
            "authorEmail": self.author_email,
            "clonedFrom": self.cloned_from,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "publishedAt": _iso(self.published_at),
        }

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "ProofTemplate":
        raw_claims = data.get("claims")
        claims = [
            Claim.from_dict(item)
            for item in (raw_claims if isinstance(raw_claims, list) else [])
            if isinstance(item, Mapping)
        ]
        template = cls(
            name=_text_value(data.get("name")),
            github_user_id=str(data.get("githubUserId") or ""),
            description=_text_value(data.get("description")),
            purpose=_text_value(data.get("purpose")),
            claims=claims,
            format=_optional_str(data.get("format")) or DEFAULT_FORMAT,
            category=_optional_str(data.get("category")) or DEFAULT_CATEGORY,
            version=_optional_str(data.get("version")) or DEFAULT_VERSION,
            tags=_listify_strings(data.get("tags")),
            status=_optional_str(data.get("status")) or STATUS_DRAFT,
            vdr_uri=_optional_str(data.get("vdrUri")),
            github_username=_optional_str(data.get("githubUsername")),
            author_name=_optional_str(data.get("authorName")),
            author_email=_optional_str(data.get("authorEmail")),
            cloned_from=_optional_str(data.get("clonedFrom")),
            created_at=_parse_datetime(data.get("createdAt")) or _default_datetime(),
            updated_at=_parse_datetime(data.get("updatedAt")) or _default_datetime(),
            published_at=_parse_datetime(data.get("publishedAt")),
        )
        identifier = _optional_str(data.get("id"))
        if identifier:
            template.id = identifier
        return template

    def to_response(self) -> dict[str, Any]:
        """Serialise the template for API clients, grouping metadata fields."""

        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "purpose": self.purpose,
            "claims": [claim.to_dict() for claim in self.claims],
            "format": self.format,
            "metadata": {
                "category": self.category,
                "version": self.version,
                "author": self.github_username or self.author_name,
                "tags": list(self.tags),
            },
            "status": self.status,
            "vdrUri": self.vdr_uri,
            "clonedFrom": self.cloned_from,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "publishedAt": _iso(self.published_at),
        }

    def to_list_item(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "claimCount": len(self.claims),
            "vdrUri": self.vdr_uri,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "publishedAt": _iso(self.published_at),
        }
