"""Runtime configuration for the Credential Design Tools backend."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Final, Mapping

logger = logging.getLogger(__name__)

DEFAULT_REPO_OWNER: Final[str] = "Canadian-Open-Property-Association"
DEFAULT_REPO_NAME: Final[str] = "governance"
DEFAULT_API_URL: Final[str] = "https://api.github.com"
DEFAULT_BASE_URL: Final[str] = "https://openpropertyassociation.ca"
DEFAULT_APP_URL: Final[str] = "https://apps.openpropertyassociation.ca"
DEFAULT_TIMEOUT: Final[float] = 10.0
DEFAULT_DB_PATH: Final[Path] = Path.home() / "credtools" / "data" / "proof_templates.db"


def _env_text(environ: Mapping[str, str], key: str, default: str | None = None) -> str | None:
    """Return the trimmed value of ``key`` or ``default`` when unset or blank."""

    value = environ.get(key)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _strip_slashes(value: str) -> str:
    return value.strip().strip("/")


def _resolve_timeout(raw_value: str | None) -> float:
    if raw_value is None:
        return DEFAULT_TIMEOUT
    try:
        parsed = float(raw_value)
    except ValueError:
        logger.warning("Invalid GITHUB_TIMEOUT %r; using default", raw_value, extra={"event": "config.timeout_invalid"})
        return DEFAULT_TIMEOUT
    if parsed <= 0:
        return DEFAULT_TIMEOUT
    return parsed


@dataclass(slots=True, frozen=True)
class Settings:
    """Governance repository coordinates and folder conventions."""

    repo_owner: str = DEFAULT_REPO_OWNER
    repo_name: str = DEFAULT_REPO_NAME
    base_branch: str | None = None
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    vct_folder: str = "credentials/vct"
    schema_folder: str = "credentials/schemas"
    context_folder: str = "credentials/contexts"
    vocab_folder: str = "credentials/vocab"
    proof_template_folder: str = "credentials/proof-templates"
    entity_registry_path: str = "credentials/entities/entities.json"
    harmonization_path: str = "credentials/harmonization/mappings.json"
    base_url: str = DEFAULT_BASE_URL
    app_url: str = DEFAULT_APP_URL
    db_path: Path = DEFAULT_DB_PATH

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""

        env = os.environ if environ is None else environ
        defaults = cls()
        db_path = _env_text(env, "CREDTOOLS_DB_PATH")

        return cls(
            repo_owner=_env_text(env, "GITHUB_REPO_OWNER", defaults.repo_owner) or defaults.repo_owner,
            repo_name=_env_text(env, "GITHUB_REPO_NAME", defaults.repo_name) or defaults.repo_name,
            base_branch=_env_text(env, "GITHUB_BASE_BRANCH"),
            api_url=(_env_text(env, "GITHUB_API_URL", defaults.api_url) or defaults.api_url).rstrip("/"),
            timeout=_resolve_timeout(_env_text(env, "GITHUB_TIMEOUT")),
            vct_folder=_strip_slashes(_env_text(env, "VCT_FOLDER_PATH", defaults.vct_folder) or defaults.vct_folder),
            schema_folder=_strip_slashes(
                _env_text(env, "SCHEMA_FOLDER_PATH", defaults.schema_folder) or defaults.schema_folder
            ),
            context_folder=_strip_slashes(
                _env_text(env, "CONTEXT_FOLDER_PATH", defaults.context_folder) or defaults.context_folder
            ),
            vocab_folder=_strip_slashes(
                _env_text(env, "VOCAB_FOLDER_PATH", defaults.vocab_folder) or defaults.vocab_folder
            ),
            proof_template_folder=_strip_slashes(
                _env_text(env, "PROOF_TEMPLATE_FOLDER_PATH", defaults.proof_template_folder)
                or defaults.proof_template_folder
            ),
            entity_registry_path=_strip_slashes(
                _env_text(env, "ENTITY_REGISTRY_PATH", defaults.entity_registry_path) or defaults.entity_registry_path
            ),
            harmonization_path=_strip_slashes(
                _env_text(env, "HARMONIZATION_MAPPINGS_PATH", defaults.harmonization_path)
                or defaults.harmonization_path
            ),
            base_url=(_env_text(env, "BASE_URL", defaults.base_url) or defaults.base_url).rstrip("/"),
            app_url=_env_text(env, "CREDTOOLS_APP_URL", defaults.app_url) or defaults.app_url,
            db_path=Path(db_path).expanduser() if db_path else defaults.db_path,
        )

    def vdr_uri(self, path: str) -> str:
        """Return the public URI a repository path resolves to once merged."""

        return f"{self.base_url}/{path.lstrip('/')}"


__all__ = ["Settings", "DEFAULT_DB_PATH"]
