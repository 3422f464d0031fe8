"""Publish a local JSON or YAML document to the governance repository as a pull request."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Any, Sequence

import yaml

from credtools.config import Settings
from credtools.models.publisher import ArtifactKind, ArtifactPayload, PublishOptions
from credtools.services.errors import PublishError, RemoteError
from credtools.services.github_client import GitHubClient
from credtools.services.publisher import PublishOrchestrator

LOGGER = logging.getLogger("credtools.publish_artifact")

KIND_CHOICES: dict[str, ArtifactKind] = {
    "vct": ArtifactKind.VCT,
    "schema": ArtifactKind.JSON_SCHEMA,
    "context": ArtifactKind.JSONLD_CONTEXT,
    "entity": ArtifactKind.ENTITY_REGISTRY,
    "harmonization": ArtifactKind.HARMONIZATION_MAPPINGS,
    "vocabulary": ArtifactKind.VOCAB_BATCH,
}


def _configure_logging() -> None:
    """Configure root logging based on ``CREDTOOLS_LOG_LEVEL``."""
    level_name = os.getenv("CREDTOOLS_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Open a pull request publishing a credential artifact.")
    parser.add_argument("--kind", required=True, choices=sorted(KIND_CHOICES), help="Artifact type to publish.")
    parser.add_argument(
        "--file",
        dest="files",
        action="append",
        required=True,
        type=Path,
        help="JSON or YAML document to publish. Repeat for vocabulary batches.",
    )
    parser.add_argument("--name", help="Display name used to derive the filename.")
    parser.add_argument("--category", help="Category prefixed to the derived filename.")
    parser.add_argument("--filename", help="Explicit target filename (single-file kinds only).")
    parser.add_argument("--title", help="Pull request title override.")
    parser.add_argument("--description", help="Pull request body override.")
    parser.add_argument("--commit-message", help="Commit message override.")
    parser.add_argument("--base-branch", help="Branch to fork from and target; defaults to configuration.")
    parser.add_argument("--author", help="GitHub handle credited in the PR body; defaults to the token owner.")
    return parser.parse_args(argv)


def _load_document(path: Path) -> Any:
    """Parse ``path`` with PyYAML, which also accepts plain JSON."""

    with path.open("r", encoding="utf-8") as handle:
        document = yaml.safe_load(handle)
    if document is None:
        raise ValueError(f"{path} is empty")
    return document


def _build_payload(kind: ArtifactKind, args: argparse.Namespace) -> ArtifactPayload:
    if kind is ArtifactKind.VOCAB_BATCH:
        items = [
            ArtifactPayload(
                content=_load_document(path),
                name=args.name if args.name and len(args.files) == 1 else path.stem,
                category=args.category,
            )
            for path in args.files
        ]
        return ArtifactPayload(items=items)

    if len(args.files) != 1:
        raise ValueError(f"--kind {args.kind} publishes exactly one --file")
    path = args.files[0]
    return ArtifactPayload(
        content=_load_document(path),
        filename=args.filename or (None if args.name else path.stem),
        name=args.name,
        category=args.category,
    )


def _build_client(token: str, settings: Settings) -> GitHubClient:
    return GitHubClient(token, api_url=settings.api_url, timeout=settings.timeout)


def main(argv: Sequence[str] | None = None) -> int:
    _configure_logging()
    args = _parse_args(argv)
    kind = KIND_CHOICES[args.kind]

    token = (os.getenv("GITHUB_TOKEN") or "").strip()
    if not token:
        LOGGER.error("GITHUB_TOKEN must be set to publish")
        return 1

    try:
        payload = _build_payload(kind, args)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        LOGGER.error("Unable to read input: %s", exc)
        return 1

    settings = Settings.from_env()
    options = PublishOptions(
        commit_message=args.commit_message,
        pr_title=args.title,
        pr_body=args.description,
        base_branch_override=args.base_branch,
    )

    with _build_client(token, settings) as client:
        try:
            author = args.author or client.get_authenticated_user().login
        except RemoteError as exc:
            LOGGER.error("Unable to resolve the token owner: %s", exc.message)
            return 1

        LOGGER.info("PUBLISH_START kind=%s files=%s author=%s", kind.value, len(args.files), author)
        orchestrator = PublishOrchestrator(client, settings=settings)
        try:
            result = orchestrator.publish(kind, payload, options, author_handle=author)
        except PublishError as exc:
            LOGGER.error("PUBLISH_FAILED %s", exc.message)
            print(json.dumps({"success": False, **exc.as_detail()}, indent=2))
            return 1

    print(json.dumps(result.as_dict(), indent=2))
    LOGGER.info("PUBLISH_COMPLETE pr=%s branch=%s", result.pr_url, result.branch_name)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
