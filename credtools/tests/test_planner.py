from __future__ import annotations

import pytest

from credtools.config import Settings
from credtools.models.publisher import (
    ArtifactKind,
    ArtifactPayload,
    BaseBranchResolution,
    PublishRequest,
    RepoFile,
    RepoRef,
)
from credtools.services.errors import FileWriteFailed, InvalidPublishRequest, RemoteUnavailable
from credtools.services.planner import ArtifactPlanner, serialise_content
from credtools.tests.fakes import FakeGitHub

REPO = RepoRef("acme", "governance")


@pytest.fixture()
def planner(settings: Settings) -> ArtifactPlanner:
    return ArtifactPlanner(settings)


@pytest.mark.parametrize(
    ("kind", "payload", "expected_path", "expected_slug"),
    [
        (ArtifactKind.VCT, ArtifactPayload(content="{}", filename="home"), "credentials/vct/home.json", "home"),
        (
            ArtifactKind.JSON_SCHEMA,
            ArtifactPayload(content={}, name="Home Credential", category="property"),
            "credentials/schemas/property-home-credential.json",
            "property-home-credential",
        ),
        (
            ArtifactKind.JSONLD_CONTEXT,
            ArtifactPayload(content={}, filename="property.json"),
            "credentials/contexts/property.jsonld",
            "property",
        ),
        (
            ArtifactKind.ENTITY_REGISTRY,
            ArtifactPayload(content={"entities": []}),
            "credentials/entities/entities.json",
            "entities",
        ),
        (
            ArtifactKind.HARMONIZATION_MAPPINGS,
            ArtifactPayload(content={"mappings": []}, filename="ignored.json"),
            "credentials/harmonization/mappings.json",
            "mappings",
        ),
        (
            ArtifactKind.PROOF_TEMPLATE,
            ArtifactPayload(content={}, name="Age Check", filename="custom.json"),
            "credentials/proof-templates/general-age-check.json",
            "general-age-check",
        ),
    ],
)
def test_paths_follow_folder_conventions(
    planner: ArtifactPlanner,
    kind: ArtifactKind,
    payload: ArtifactPayload,
    expected_path: str,
    expected_slug: str,
) -> None:
    request = planner.plan(kind, payload, author_handle="octocat")

    assert request.paths == [expected_path]
    assert request.slug == expected_slug
    assert request.author_handle == "octocat"


def test_proof_template_display_name_is_template_name(planner: ArtifactPlanner) -> None:
    request = planner.plan(
        ArtifactKind.PROOF_TEMPLATE,
        ArtifactPayload(content={}, name="Age Check", category="identity"),
        author_handle="octocat",
    )

    assert request.display_name == "Age Check"
    assert request.paths == ["credentials/proof-templates/identity-age-check.json"]


def test_proof_template_category_is_kept_verbatim(planner: ArtifactPlanner) -> None:
    request = planner.plan(
        ArtifactKind.PROOF_TEMPLATE,
        ArtifactPayload(content={}, name="Age Check", category=" Identity Docs "),
        author_handle="octocat",
    )

    assert request.paths == ["credentials/proof-templates/Identity Docs-age-check.json"]
    assert request.slug == "identity-docs-age-check"


def test_proof_template_category_cannot_escape_folder(planner: ArtifactPlanner) -> None:
    with pytest.raises(InvalidPublishRequest):
        planner.plan(
            ArtifactKind.PROOF_TEMPLATE,
            ArtifactPayload(content={}, name="Age Check", category="../identity"),
            author_handle="octocat",
        )


def test_folders_come_from_settings() -> None:
    planner = ArtifactPlanner(Settings(schema_folder="schemas/v1"))

    request = planner.plan(
        ArtifactKind.JSON_SCHEMA, ArtifactPayload(content={}, filename="home"), author_handle="octocat"
    )

    assert request.paths == ["schemas/v1/home.json"]


def test_vocabulary_batch_plans_one_file_per_item(planner: ArtifactPlanner) -> None:
    payload = ArtifactPayload(
        items=[
            ArtifactPayload(name="Street Address", content={"type": "StreetAddress"}),
            ArtifactPayload(name="Parcel", content="{}", filename="land-parcel"),
        ]
    )

    request = planner.plan(ArtifactKind.VOCAB_BATCH, payload, author_handle="octocat")

    assert request.paths == ["credentials/vocab/street-address.json", "credentials/vocab/land-parcel.json"]
    assert request.item_names == ["Street Address", "Parcel"]
    assert request.slug == "2-types"


@pytest.mark.parametrize(
    "payload",
    [
        ArtifactPayload(items=[]),
        ArtifactPayload(items=[ArtifactPayload(name="A", content={}), ArtifactPayload(name="a", content={})]),
        ArtifactPayload(items=[ArtifactPayload(name="A", content=None)]),
    ],
)
def test_invalid_vocabulary_batches_are_rejected(planner: ArtifactPlanner, payload: ArtifactPayload) -> None:
    with pytest.raises(InvalidPublishRequest):
        planner.plan(ArtifactKind.VOCAB_BATCH, payload, author_handle="octocat")


@pytest.mark.parametrize("filename", ["../secrets.json", "nested/file.json", "back\\slash.json"])
def test_unsafe_filenames_are_rejected(planner: ArtifactPlanner, filename: str) -> None:
    with pytest.raises(InvalidPublishRequest):
        planner.plan(ArtifactKind.VCT, ArtifactPayload(content="{}", filename=filename), author_handle="octocat")


def test_name_without_slug_characters_is_rejected(planner: ArtifactPlanner) -> None:
    with pytest.raises(InvalidPublishRequest):
        planner.plan(ArtifactKind.JSON_SCHEMA, ArtifactPayload(content={}, name="!!!"), author_handle="octocat")


def test_validate_rejects_empty_requests() -> None:
    request = PublishRequest(
        artifact_kind=ArtifactKind.VCT, files=[], author_handle="octocat", slug="x", display_name="x"
    )

    with pytest.raises(InvalidPublishRequest):
        ArtifactPlanner.validate(request)


def test_serialise_content_keeps_strings_and_indents_documents() -> None:
    assert serialise_content("raw text") == b"raw text"
    assert serialise_content(b"\x00\x01") == b"\x00\x01"
    assert serialise_content({"name": "Café"}) == '{\n  "name": "Café"\n}'.encode("utf-8")


def test_detect_existing_reports_previous_sha(planner: ArtifactPlanner, fake_github: FakeGitHub) -> None:
    existing = fake_github.seed_file("credentials/vct/home.json", "{}")
    request = PublishRequest(
        artifact_kind=ArtifactKind.VCT,
        files=[
            RepoFile(path="credentials/vct/home.json", content=b"{}"),
            RepoFile(path="credentials/vct/new.json", content=b"{}"),
        ],
        author_handle="octocat",
        slug="home",
        display_name="home.json",
    )
    base = BaseBranchResolution(branch_name="main", head_commit_sha=fake_github.branches["main"])

    outcomes = planner.detect_existing(fake_github, REPO, request, base)

    assert [(outcome.path, outcome.previous_sha) for outcome in outcomes] == [
        ("credentials/vct/home.json", existing),
        ("credentials/vct/new.json", None),
    ]
    assert [call[2] for call in fake_github.calls if call[0] == "get_file"] == ["main", "main"]


def test_detect_existing_wraps_remote_failures(planner: ArtifactPlanner, fake_github: FakeGitHub) -> None:
    fake_github.fail_on("get_file", RemoteUnavailable("timeout"))
    request = planner.plan(ArtifactKind.VCT, ArtifactPayload(content="{}", filename="home"), author_handle="octocat")
    base = BaseBranchResolution(branch_name="main", head_commit_sha="sha")

    with pytest.raises(FileWriteFailed):
        planner.detect_existing(fake_github, REPO, request, base)
