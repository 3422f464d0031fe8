"""Default commit messages, pull request titles and bodies for published artifacts."""

from __future__ import annotations

import re
from typing import Sequence

from jinja2 import Template

from credtools.models.publisher import ArtifactKind, PublishRequest

ARTIFACT_LABELS: dict[ArtifactKind, str] = {
    ArtifactKind.VCT: "VCT branding file",
    ArtifactKind.JSON_SCHEMA: "JSON Schema",
    ArtifactKind.JSONLD_CONTEXT: "JSON-LD context",
    ArtifactKind.ENTITY_REGISTRY: "entity registry",
    ArtifactKind.VOCAB_BATCH: "vocabulary type",
    ArtifactKind.PROOF_TEMPLATE: "proof template",
    ArtifactKind.HARMONIZATION_MAPPINGS: "harmonization mappings",
}

PR_BODY_TEMPLATE = Template(
    """
This PR {{ verb }} {{ subject }}{% if files|length == 1 %}: `{{ files[0] }}`{% endif %}

{% if files|length > 1 %}
{{ file_list }}
{% endif %}

{% if details %}
{{ details }}
{% endif %}

Created by @{{ author }} using [Credential Design Tools]({{ app_url }}).
""".strip()
)

_BLANK_RUN_RE = re.compile(r"\n{3,}")


def vocabulary_commit_message(names: Sequence[str]) -> str:
    """Return ``Add vocabulary type: X`` for one item, ``Add N vocabulary types`` otherwise."""

    if len(names) == 1:
        return f"Add vocabulary type: {names[0]}"
    return f"Add {len(names)} vocabulary types"


def default_title(request: PublishRequest, *, is_update: bool) -> str:
    if request.artifact_kind is ArtifactKind.VOCAB_BATCH:
        return vocabulary_commit_message(request.item_names)
    verb = "Update" if is_update else "Add"
    return f"{verb} {ARTIFACT_LABELS[request.artifact_kind]}: {request.display_name}"


def _subject(request: PublishRequest) -> str:
    kind = request.artifact_kind
    if kind is ArtifactKind.VOCAB_BATCH:
        count = len(request.files)
        return "1 vocabulary type" if count == 1 else f"{count} vocabulary types"
    if kind is ArtifactKind.PROOF_TEMPLATE:
        return f"the proof template **{request.display_name}**"
    return f"the {ARTIFACT_LABELS[kind]}"


def render_pr_body(request: PublishRequest, *, is_update: bool, app_url: str) -> str:
    rendered = PR_BODY_TEMPLATE.render(
        verb="updates" if is_update else "adds",
        subject=_subject(request),
        files=request.paths,
        file_list="\n".join(f"- `{path}`" for path in request.paths),
        details="\n".join(request.details),
        author=request.author_handle,
        app_url=app_url,
    )
    return _BLANK_RUN_RE.sub("\n\n", rendered).strip()


__all__ = ["ARTIFACT_LABELS", "default_title", "render_pr_body", "vocabulary_commit_message"]
