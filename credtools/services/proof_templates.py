"""Proof template lifecycle: drafting, ownership checks, cloning and publishing."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Protocol

from credtools.models.identity import SessionIdentity
from credtools.models.proof_template import (
    DEFAULT_CATEGORY,
    DEFAULT_VERSION,
    STATUS_DRAFT,
    Claim,
    ProofTemplate,
)
from credtools.models.publisher import ArtifactKind, ArtifactPayload, PublishOptions, PublishResult
from credtools.services.presentation_exchange import to_presentation_definition
from credtools.services.publisher import MarkPublished

logger = logging.getLogger(__name__)


class ProofTemplateNotFound(LookupError):
    pass


class ProofTemplateAccessDenied(PermissionError):
    pass


class SupportsProofTemplateStore(Protocol):
    """Subset of :class:`LocalSQLiteProofTemplateRepository` used by the service."""

    def get(self, template_id: str) -> ProofTemplate | None: ...

    def list_for_user(self, github_user_id: str) -> list[ProofTemplate]: ...

    def create(self, template: ProofTemplate) -> ProofTemplate: ...

    def save(self, template: ProofTemplate) -> ProofTemplate: ...

    def delete(self, template_id: str) -> bool: ...

    def mark_published(self, template_id: str, vdr_uri: str, published_at: datetime) -> Any: ...


class SupportsArtifactPublishing(Protocol):
    """Subset of :class:`PublishOrchestrator` used to publish templates."""

    def publish(
        self,
        kind: ArtifactKind,
        payload: ArtifactPayload,
        options: PublishOptions | None = None,
        *,
        author_handle: str,
        record_id: str | None = None,
        mark_published: MarkPublished | None = None,
    ) -> PublishResult: ...


def _claim_summary(claim: Claim) -> str:
    return f"- {claim.display_label}: {claim.purpose or 'No description'}"


def publication_details(template: ProofTemplate) -> list[str]:
    """Return the PR body lines describing ``template``."""

    return [
        f"**Purpose:** {template.purpose or 'Not specified'}",
        f"**Category:** {template.category}",
        f"**Claims:** {len(template.claims)}",
        "",
        *(_claim_summary(claim) for claim in template.claims),
    ]


@dataclass(slots=True)
class ProofTemplateService:
    """Apply ownership rules on top of the template store."""

    repository: SupportsProofTemplateStore

    def list_templates(self, user: SessionIdentity) -> list[ProofTemplate]:
        return self.repository.list_for_user(user.id)

    def get_template(self, template_id: str, user: SessionIdentity) -> ProofTemplate:
        """Return a template the user owns, or any published template."""

        template = self._require(template_id)
        if template.github_user_id != user.id and not template.is_published:
            raise ProofTemplateAccessDenied("Access denied")
        return template

    def create_template(
        self,
        user: SessionIdentity,
        *,
        name: str,
        description: str = "",
        purpose: str = "",
        category: str | None = None,
    ) -> ProofTemplate:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("Name is required")
        template = ProofTemplate(
            name=cleaned,
            description=description or "",
            purpose=purpose or "",
            category=(category or "").strip() or DEFAULT_CATEGORY,
            github_user_id=user.id,
            github_username=user.login,
            author_name=user.display_name,
            author_email=user.email,
        )
        return self.repository.create(template)

    def update_template(self, template_id: str, user: SessionIdentity, changes: Mapping[str, Any]) -> ProofTemplate:
        """Apply partial ``changes``; published templates stay editable so they can be re-published."""

        template = self._require_owned(template_id, user)

        if changes.get("name") is not None:
            name = str(changes["name"]).strip()
            if not name:
                raise ValueError("Name must not be empty")
            template.name = name
        if changes.get("description") is not None:
            template.description = str(changes["description"])
        if changes.get("purpose") is not None:
            template.purpose = str(changes["purpose"])
        if changes.get("claims") is not None:
            template.claims = [Claim.from_dict(item) for item in changes["claims"] if isinstance(item, Mapping)]

        metadata = changes.get("metadata")
        if isinstance(metadata, Mapping):
            if metadata.get("category") is not None:
                template.category = str(metadata["category"]).strip() or DEFAULT_CATEGORY
            if metadata.get("version") is not None:
                template.version = str(metadata["version"])
            if metadata.get("tags") is not None:
                template.tags = [str(tag) for tag in metadata["tags"] if str(tag).strip()]

        template.updated_at = datetime.now(timezone.utc)
        return self.repository.save(template)

    def delete_template(self, template_id: str, user: SessionIdentity) -> None:
        self._require_owned(template_id, user)
        self.repository.delete(template_id)

    def clone_template(self, template_id: str, user: SessionIdentity) -> ProofTemplate:
        """Copy a template into a new draft owned by ``user``."""

        source = self._require(template_id)
        if not source.is_published and source.github_user_id != user.id:
            raise ProofTemplateAccessDenied("Access denied")

        clone = ProofTemplate(
            name=f"{source.name} (Copy)",
            description=source.description,
            purpose=source.purpose,
            claims=[Claim.from_dict(claim.to_dict()) for claim in source.claims],
            format=source.format,
            category=source.category,
            version=DEFAULT_VERSION,
            tags=list(source.tags),
            status=STATUS_DRAFT,
            github_user_id=user.id,
            github_username=user.login,
            author_name=user.display_name,
            author_email=user.email,
            cloned_from=source.id,
        )
        return self.repository.create(clone)

    def publish_template(
        self,
        template_id: str,
        user: SessionIdentity,
        publisher: SupportsArtifactPublishing,
        *,
        commit_message: str | None = None,
    ) -> PublishResult:
        """Publish the template's Presentation Exchange definition as a pull request."""

        template = self._require_owned(template_id, user)
        if not template.claims:
            raise ValueError("Cannot publish template without claims")

        payload = ArtifactPayload(
            content=to_presentation_definition(template),
            name=template.name,
            category=template.category,
            details=publication_details(template),
        )
        result = publisher.publish(
            ArtifactKind.PROOF_TEMPLATE,
            payload,
            PublishOptions(commit_message=commit_message),
            author_handle=user.login,
            record_id=template.id,
            mark_published=self.repository.mark_published,
        )
        logger.info(
            "Proof template publish requested",
            extra={"event": "proof_template.publish", "template_id": template.id, "pr_url": result.pr_url},
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require(self, template_id: str) -> ProofTemplate:
        template = self.repository.get(template_id)
        if template is None:
            raise ProofTemplateNotFound("Proof template not found")
        return template

    def _require_owned(self, template_id: str, user: SessionIdentity) -> ProofTemplate:
        template = self._require(template_id)
        if template.github_user_id != user.id:
            raise ProofTemplateAccessDenied("Access denied")
        return template


__all__ = [
    "ProofTemplateAccessDenied",
    "ProofTemplateNotFound",
    "ProofTemplateService",
    "publication_details",
]
