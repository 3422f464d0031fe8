"""FastAPI application exposing the Credential Design Tools publishing backend."""

from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache
import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from credtools.config import Settings
from credtools.models.identity import SessionIdentity
from credtools.models.publisher import ArtifactKind, ArtifactPayload, PublishOptions, PublishResult
from credtools.services.errors import InvalidPublishRequest, PublishError, RemoteError
from credtools.services.github_client import GitHubClient
from credtools.services.library import ArtifactLibrary
from credtools.services.proof_templates import (
    ProofTemplateAccessDenied,
    ProofTemplateNotFound,
    ProofTemplateService,
)
from credtools.services.publisher import PublishOrchestrator
from credtools.services.sqlite_repo import LocalSQLiteProofTemplateRepository, create_repository

app = FastAPI(title="Credential Design Tools")

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Request payloads
# ----------------------------------------------------------------------
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PublishArtifactRequest(_CamelModel):
    """Single-file publish submitted by one of the editors."""

    content: Any = Field(..., description="Document to publish; non-strings are written as indented JSON.")
    filename: str | None = None
    name: str | None = None
    category: str | None = None
    title: str | None = Field(default=None, description="Pull request title override.")
    description: str | None = Field(default=None, description="Pull request body override.")
    commit_message: str | None = Field(default=None, alias="commitMessage")
    base_branch: str | None = Field(default=None, alias="baseBranch")

    @field_validator("content")
    @classmethod
    def _ensure_content(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("Content is required.")
        return value

    def to_payload(self) -> ArtifactPayload:
        return ArtifactPayload(
            content=self.content,
            filename=self.filename,
            name=self.name,
            category=self.category,
        )

    def to_options(self) -> PublishOptions:
        return PublishOptions(
            commit_message=self.commit_message,
            pr_title=self.title,
            pr_body=self.description,
            base_branch_override=self.base_branch,
        )


class VocabularyItem(_CamelModel):
    name: str
    content: Any
    filename: str | None = None
    category: str | None = None


class PublishVocabularyRequest(_CamelModel):
    """Batch of vocabulary types committed together."""

    items: list[VocabularyItem] = Field(..., min_length=1)
    title: str | None = None
    description: str | None = None
    commit_message: str | None = Field(default=None, alias="commitMessage")
    base_branch: str | None = Field(default=None, alias="baseBranch")

    def to_payload(self) -> ArtifactPayload:
        return ArtifactPayload(
            items=[
                ArtifactPayload(content=item.content, filename=item.filename, name=item.name, category=item.category)
                for item in self.items
            ]
        )

    def to_options(self) -> PublishOptions:
        return PublishOptions(
            commit_message=self.commit_message,
            pr_title=self.title,
            pr_body=self.description,
            base_branch_override=self.base_branch,
        )


class CreateProofTemplateRequest(_CamelModel):
    name: str
    description: str = ""
    purpose: str = ""
    category: str | None = None

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Name is required.")
        return cleaned


class UpdateProofTemplateRequest(_CamelModel):
    name: str | None = None
    description: str | None = None
    purpose: str | None = None
    claims: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None


class PublishProofTemplateRequest(_CamelModel):
    commit_message: str | None = Field(default=None, alias="commitMessage")


# ----------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return token.strip()


def get_identity(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> SessionIdentity:
    """Resolve the GitHub user owning the bearer token on the request."""

    token = _bearer_token(authorization)
    try:
        with GitHubClient(token, api_url=settings.api_url, timeout=settings.timeout) as client:
            return client.get_authenticated_user()
    except RemoteError as exc:
        if exc.status_code in (401, 403):
            raise HTTPException(status_code=401, detail="Authentication required") from exc
        logger.warning("Identity lookup failed", extra={"event": "auth.lookup_failed", "status": exc.status_code})
        raise HTTPException(status_code=502, detail=_remote_detail(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Authentication required") from exc


def get_github_client(
    identity: SessionIdentity = Depends(get_identity),
    settings: Settings = Depends(get_settings),
) -> Iterator[GitHubClient]:
    client = GitHubClient(identity.token, api_url=settings.api_url, timeout=settings.timeout)
    try:
        yield client
    finally:
        client.close()


def get_orchestrator(
    client: GitHubClient = Depends(get_github_client),
    settings: Settings = Depends(get_settings),
) -> PublishOrchestrator:
    return PublishOrchestrator(client, settings=settings)


def get_library(
    client: GitHubClient = Depends(get_github_client),
    settings: Settings = Depends(get_settings),
) -> ArtifactLibrary:
    return ArtifactLibrary(client, settings=settings)


@lru_cache(maxsize=1)
def _cached_repository() -> LocalSQLiteProofTemplateRepository:
    return create_repository(db_path=get_settings().db_path)


def get_proof_template_service() -> ProofTemplateService:
    """FastAPI dependency returning the service over the shared SQLite store."""

    try:
        repository = _cached_repository()
    except Exception as exc:
        logger.exception("Proof template store unavailable", extra={"event": "proof_template.store_init"})
        raise HTTPException(status_code=503, detail="Proof template store unavailable") from exc
    return ProofTemplateService(repository)


# ----------------------------------------------------------------------
# Error translation
# ----------------------------------------------------------------------
def _remote_detail(exc: RemoteError) -> dict[str, object]:
    return {"message": exc.message, "error": type(exc).__name__, "remoteStatus": exc.status_code}


def _publish_http_error(exc: PublishError) -> HTTPException:
    status_code = 400 if isinstance(exc, InvalidPublishRequest) else 502
    return HTTPException(status_code=status_code, detail=exc.as_detail())


def _run_publish(
    orchestrator: PublishOrchestrator,
    kind: ArtifactKind,
    payload: ArtifactPayload,
    options: PublishOptions,
    identity: SessionIdentity,
) -> PublishResult:
    logger.info(
        "Publish requested",
        extra={"event": "publish.request", "kind": kind.value, "author": identity.login},
    )
    try:
        return orchestrator.publish(kind, payload, options, author_handle=identity.login)
    except PublishError as exc:
        raise _publish_http_error(exc) from exc


# ----------------------------------------------------------------------
# Routes
# ----------------------------------------------------------------------
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/github/config")
def github_config(
    identity: SessionIdentity = Depends(get_identity),
    settings: Settings = Depends(get_settings),
) -> dict[str, str]:
    """Return the public base URLs artifacts resolve to once merged."""

    return {
        "vctBaseUrl": settings.vdr_uri(f"{settings.vct_folder}/"),
        "schemaBaseUrl": settings.vdr_uri(f"{settings.schema_folder}/"),
        "contextBaseUrl": settings.vdr_uri(f"{settings.context_folder}/"),
        "vocabBaseUrl": settings.vdr_uri(f"{settings.vocab_folder}/"),
        "proofTemplateBaseUrl": settings.vdr_uri(f"{settings.proof_template_folder}/"),
    }


def _list_library(library: ArtifactLibrary, kind: ArtifactKind) -> list[dict[str, Any]]:
    try:
        return library.list_files(kind)
    except RemoteError as exc:
        raise HTTPException(status_code=502, detail=_remote_detail(exc)) from exc


@app.get("/api/github/vct-library")
def vct_library(library: ArtifactLibrary = Depends(get_library)) -> list[dict[str, Any]]:
    return _list_library(library, ArtifactKind.VCT)


@app.get("/api/github/schema-library")
def schema_library(library: ArtifactLibrary = Depends(get_library)) -> list[dict[str, Any]]:
    return _list_library(library, ArtifactKind.JSON_SCHEMA)


@app.get("/api/github/vct-available/{filename}")
def vct_available(filename: str, library: ArtifactLibrary = Depends(get_library)) -> dict[str, Any]:
    try:
        available, final_filename = library.is_available(ArtifactKind.VCT, filename)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RemoteError as exc:
        raise HTTPException(status_code=502, detail=_remote_detail(exc)) from exc
    return {"available": available, "filename": final_filename}


@app.get("/api/github/vct/{filename}")
def read_vct(filename: str, library: ArtifactLibrary = Depends(get_library)) -> dict[str, Any]:
    try:
        document = library.read(ArtifactKind.VCT, filename)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RemoteError as exc:
        raise HTTPException(status_code=502, detail=_remote_detail(exc)) from exc
    if document is None:
        raise HTTPException(status_code=404, detail="VCT file not found")
    return document


_SINGLE_FILE_ROUTES: dict[str, ArtifactKind] = {
    "vct": ArtifactKind.VCT,
    "schema": ArtifactKind.JSON_SCHEMA,
    "context": ArtifactKind.JSONLD_CONTEXT,
    "entity": ArtifactKind.ENTITY_REGISTRY,
    "harmonization": ArtifactKind.HARMONIZATION_MAPPINGS,
}


@app.post("/api/github/vocabulary")
def publish_vocabulary(
    body: PublishVocabularyRequest,
    identity: SessionIdentity = Depends(get_identity),
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    result = _run_publish(
        orchestrator, ArtifactKind.VOCAB_BATCH, body.to_payload(), body.to_options(), identity
    )
    return result.as_dict()


@app.post("/api/github/{artifact}")
def publish_artifact(
    artifact: str,
    body: PublishArtifactRequest,
    identity: SessionIdentity = Depends(get_identity),
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Publish one file as a pull request against the governance repository."""

    kind = _SINGLE_FILE_ROUTES.get(artifact)
    if kind is None:
        raise HTTPException(status_code=404, detail=f"Unknown artifact type: {artifact}")
    result = _run_publish(orchestrator, kind, body.to_payload(), body.to_options(), identity)
    return result.as_dict()


# -- proof templates ----------------------------------------------------
def _template_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ProofTemplateNotFound):
        return HTTPException(status_code=404, detail="Proof template not found")
    if isinstance(exc, ProofTemplateAccessDenied):
        return HTTPException(status_code=403, detail="Access denied")
    return HTTPException(status_code=400, detail=str(exc))


_TEMPLATE_ERRORS = (ProofTemplateNotFound, ProofTemplateAccessDenied, ValueError)


@app.get("/api/proof-templates")
def list_proof_templates(
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
) -> list[dict[str, Any]]:
    return [template.to_list_item() for template in service.list_templates(identity)]


@app.post("/api/proof-templates", status_code=201)
def create_proof_template(
    body: CreateProofTemplateRequest,
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
) -> dict[str, Any]:
    try:
        template = service.create_template(
            identity,
            name=body.name,
            description=body.description,
            purpose=body.purpose,
            category=body.category,
        )
    except ValueError as exc:
        raise _template_http_error(exc) from exc
    return template.to_response()


@app.get("/api/proof-templates/{template_id}")
def get_proof_template(
    template_id: str,
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
) -> dict[str, Any]:
    try:
        return service.get_template(template_id, identity).to_response()
    except _TEMPLATE_ERRORS as exc:
        raise _template_http_error(exc) from exc


@app.put("/api/proof-templates/{template_id}")
def update_proof_template(
    template_id: str,
    body: UpdateProofTemplateRequest,
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
) -> dict[str, Any]:
    try:
        template = service.update_template(template_id, identity, body.model_dump(exclude_none=True))
    except _TEMPLATE_ERRORS as exc:
        raise _template_http_error(exc) from exc
    return template.to_response()


@app.delete("/api/proof-templates/{template_id}")
def delete_proof_template(
    template_id: str,
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
) -> dict[str, bool]:
    try:
        service.delete_template(template_id, identity)
    except _TEMPLATE_ERRORS as exc:
        raise _template_http_error(exc) from exc
    return {"success": True}


@app.post("/api/proof-templates/{template_id}/publish")
def publish_proof_template(
    template_id: str,
    body: PublishProofTemplateRequest | None = None,
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
    orchestrator: PublishOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Publish the template as a Presentation Exchange definition pull request."""

    commit_message = body.commit_message if body else None
    try:
        result = service.publish_template(template_id, identity, orchestrator, commit_message=commit_message)
    except PublishError as exc:
        raise _publish_http_error(exc) from exc
    except _TEMPLATE_ERRORS as exc:
        raise _template_http_error(exc) from exc
    return {**result.as_dict(), "prUrl": result.pr_url}


@app.post("/api/proof-templates/{template_id}/clone", status_code=201)
def clone_proof_template(
    template_id: str,
    identity: SessionIdentity = Depends(get_identity),
    service: ProofTemplateService = Depends(get_proof_template_service),
) -> dict[str, Any]:
    try:
        return service.clone_template(template_id, identity).to_response()
    except _TEMPLATE_ERRORS as exc:
        raise _template_http_error(exc) from exc


@app.exception_handler(RemoteError)
async def _remote_error_handler(_request, exc: RemoteError) -> JSONResponse:
    logger.warning("Unhandled GitHub failure", extra={"event": "github.unhandled", "status": exc.status_code})
    return JSONResponse({"detail": _remote_detail(exc)}, status_code=502)
