"""Tests covering the FastAPI routes."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from credtools.config import Settings
from credtools.main import (
    app,
    get_identity,
    get_library,
    get_orchestrator,
    get_proof_template_service,
    get_settings,
)
from credtools.models.identity import SessionIdentity
from credtools.models.publisher import ArtifactKind, ArtifactPayload
from credtools.services.errors import RemoteError
from credtools.services.library import ArtifactLibrary
from credtools.services.proof_templates import ProofTemplateService
from credtools.services.publisher import PublishOrchestrator
from credtools.services.sqlite_repo import LocalSQLiteProofTemplateRepository
from credtools.tests.fakes import FakeGitHub

AUTH = {"Authorization": "Bearer test-token"}


@dataclass(slots=True)
class _Session:
    """Mutable identity holder so a test can switch users between requests."""

    identity: SessionIdentity


@pytest.fixture()
def session(identity: SessionIdentity) -> _Session:
    return _Session(identity)


@pytest.fixture()
def client(
    tmp_path: Path,
    session: _Session,
    fake_github: FakeGitHub,
    settings: Settings,
    frozen_clock: Callable[[], datetime],
) -> Iterator[TestClient]:
    repository = LocalSQLiteProofTemplateRepository(db_path=tmp_path / "templates.db")
    orchestrator = PublishOrchestrator(fake_github, settings=settings, clock=frozen_clock)

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_identity] = lambda: session.identity
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_library] = lambda: ArtifactLibrary(fake_github, settings=settings)
    app.dependency_overrides[get_proof_template_service] = lambda: ProofTemplateService(repository)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    repository.close()


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"ok": True}


def test_missing_bearer_token_is_unauthorised() -> None:
    app.dependency_overrides[get_settings] = lambda: Settings()
    try:
        with TestClient(app) as test_client:
            response = test_client.get("/api/github/config")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401


def test_config_reports_public_base_urls(client: TestClient) -> None:
    payload = client.get("/api/github/config", headers=AUTH).json()

    assert payload["vctBaseUrl"] == "https://vdr.example/credentials/vct/"
    assert payload["schemaBaseUrl"] == "https://vdr.example/credentials/schemas/"


def test_publish_schema_returns_pull_request(client: TestClient, fake_github: FakeGitHub) -> None:
    response = client.post(
        "/api/github/schema",
        json={"content": {"type": "object"}, "name": "Home Credential", "category": "property"},
        headers=AUTH,
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["file"] == "credentials/schemas/property-home-credential.json"
    assert payload["pr"]["title"] == "Add JSON Schema: property-home-credential.json"
    assert payload["isUpdate"] is False
    assert fake_github.pull_requests[0]["body"].endswith(
        "Created by @octocat using [Credential Design Tools](https://apps.example)."
    )


def test_publish_accepts_camel_case_overrides(client: TestClient, fake_github: FakeGitHub) -> None:
    fake_github.branches["staging"] = fake_github.branches["main"]

    response = client.post(
        "/api/github/context",
        json={
            "content": {"@context": {}},
            "filename": "property",
            "title": "Context for property",
            "description": "Adds the property context.",
            "commitMessage": "Add property context",
            "baseBranch": "staging",
        },
        headers=AUTH,
    )

    payload = response.json()
    assert payload["file"] == "credentials/contexts/property.jsonld"
    assert payload["baseBranch"] == "staging"
    assert fake_github.pull_requests[0]["title"] == "Context for property"
    assert fake_github.pull_requests[0]["body"] == "Adds the property context."


def test_invalid_filename_maps_to_bad_request(client: TestClient, fake_github: FakeGitHub) -> None:
    response = client.post("/api/github/vct", json={"content": "{}", "filename": "../escape"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "InvalidPublishRequest"
    assert fake_github.calls == []


def test_missing_content_is_rejected(client: TestClient) -> None:
    response = client.post("/api/github/vct", json={"filename": "home"}, headers=AUTH)

    assert response.status_code == 422


def test_remote_failure_maps_to_bad_gateway(client: TestClient, fake_github: FakeGitHub) -> None:
    fake_github.fail_on("create_branch", RemoteError("Reference update failed", status_code=500))

    response = client.post("/api/github/vct", json={"content": "{}", "filename": "home"}, headers=AUTH)

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["error"] == "BranchCreateFailed"
    assert detail["remoteStatus"] == 500
    assert "Reference update failed" in detail["message"]


def test_unknown_artifact_route_is_not_found(client: TestClient) -> None:
    response = client.post("/api/github/widgets", json={"content": "{}"}, headers=AUTH)

    assert response.status_code == 404


def test_vocabulary_batch_publishes_all_items(client: TestClient, fake_github: FakeGitHub) -> None:
    response = client.post(
        "/api/github/vocabulary",
        json={"items": [{"name": "Address", "content": {}}, {"name": "Parcel", "content": {}}]},
        headers=AUTH,
    )

    payload = response.json()
    assert payload["files"] == ["credentials/vocab/address.json", "credentials/vocab/parcel.json"]
    assert payload["pr"]["title"] == "Add 2 vocabulary types"
    assert fake_github.count("create_commit_on_tree") == 1


def test_library_routes(client: TestClient, fake_github: FakeGitHub) -> None:
    fake_github.seed_file("credentials/vct/home.json", '{"name": "Home"}')

    listed = client.get("/api/github/vct-library", headers=AUTH).json()
    taken = client.get("/api/github/vct-available/home", headers=AUTH).json()
    free = client.get("/api/github/vct-available/office", headers=AUTH).json()
    document = client.get("/api/github/vct/home.json", headers=AUTH).json()
    missing = client.get("/api/github/vct/nope.json", headers=AUTH)

    assert [entry["path"] for entry in listed] == ["credentials/vct/home.json"]
    assert taken == {"available": False, "filename": "home.json"}
    assert free == {"available": True, "filename": "office.json"}
    assert document["content"] == {"name": "Home"}
    assert missing.status_code == 404
    assert client.get("/api/github/schema-library", headers=AUTH).json() == []


def test_proof_template_lifecycle(
    client: TestClient, session: _Session, other_identity: SessionIdentity, fake_github: FakeGitHub
) -> None:
    created = client.post(
        "/api/proof-templates", json={"name": "Adult check", "purpose": "Age gate"}, headers=AUTH
    )
    assert created.status_code == 201
    template_id = created.json()["id"]
    assert created.json()["metadata"]["category"] == "general"

    updated = client.put(
        f"/api/proof-templates/{template_id}",
        json={
            "claims": [{"id": "c1", "name": "age", "label": "Age", "purpose": "Adult", "fieldPath": "age"}],
            "metadata": {"category": "identity"},
        },
        headers=AUTH,
    )
    assert updated.json()["metadata"]["category"] == "identity"

    listed = client.get("/api/proof-templates", headers=AUTH).json()
    assert [(item["id"], item["claimCount"]) for item in listed] == [(template_id, 1)]

    published = client.post(f"/api/proof-templates/{template_id}/publish", json={}, headers=AUTH)
    assert published.status_code == 200
    assert published.json()["prUrl"] == "https://github.com/acme/governance/pull/1"
    assert published.json()["vdrUri"] == "https://vdr.example/credentials/proof-templates/identity-adult-check.json"
    assert client.get(f"/api/proof-templates/{template_id}", headers=AUTH).json()["status"] == "published"

    session.identity = other_identity
    assert client.get(f"/api/proof-templates/{template_id}", headers=AUTH).status_code == 200
    assert client.delete(f"/api/proof-templates/{template_id}", headers=AUTH).status_code == 403

    clone = client.post(f"/api/proof-templates/{template_id}/clone", headers=AUTH)
    assert clone.status_code == 201
    assert clone.json()["name"] == "Adult check (Copy)"
    assert clone.json()["clonedFrom"] == template_id
    assert clone.json()["status"] == "draft"


def test_proof_template_errors(client: TestClient, session: _Session, other_identity: SessionIdentity) -> None:
    template_id = client.post("/api/proof-templates", json={"name": "Draft"}, headers=AUTH).json()["id"]

    assert client.post(f"/api/proof-templates/{template_id}/publish", headers=AUTH).status_code == 400
    assert client.get("/api/proof-templates/unknown", headers=AUTH).status_code == 404
    assert client.post("/api/proof-templates", json={"name": "  "}, headers=AUTH).status_code == 422

    session.identity = other_identity
    assert client.get(f"/api/proof-templates/{template_id}", headers=AUTH).status_code == 403
    assert client.post(f"/api/proof-templates/{template_id}/clone", headers=AUTH).status_code == 403


def test_delete_proof_template(client: TestClient) -> None:
    template_id = client.post("/api/proof-templates", json={"name": "Draft"}, headers=AUTH).json()["id"]

    assert client.delete(f"/api/proof-templates/{template_id}", headers=AUTH).json() == {"success": True}
    assert client.get(f"/api/proof-templates/{template_id}", headers=AUTH).status_code == 404


def test_per_request_orchestrators_do_not_collide_on_branch_names(fake_github: FakeGitHub, settings: Settings) -> None:
    payload = ArtifactPayload(content={"type": "object"}, name="Home Credential", category="property")

    first = get_orchestrator(client=fake_github, settings=settings)  # type: ignore[arg-type]
    second = get_orchestrator(client=fake_github, settings=settings)  # type: ignore[arg-type]
    one = first.publish(ArtifactKind.JSON_SCHEMA, payload, author_handle="octocat")
    two = second.publish(ArtifactKind.JSON_SCHEMA, payload, author_handle="octocat")

    assert one.branch_name != two.branch_name
    assert len(fake_github.pull_requests) == 2
