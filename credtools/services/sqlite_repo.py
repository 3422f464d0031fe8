"""SQLite-backed proof template repository.

The repository provides what the proof template service and the publish
workflow rely on:
  - get, list_for_user, create, save, delete
  - mark_published (invoked after a pull request has been opened)

Design notes
------------
- Templates are stored verbatim as the model's `to_document()` JSON in a `data` column.
- Minimal secondary columns (owner, status, category, updated_at) are denormalized
  for ownership filtering and newest-first ordering.
- WAL mode is enabled. Suitable for single-writer, multi-reader local use; concurrent
  writers from several processes are not coordinated.

Default location (if not provided):  ~/credtools/data/proof_templates.db
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import json
import logging
import os
from pathlib import Path
import sqlite3
from typing import Any, Final

from credtools.config import DEFAULT_DB_PATH
from credtools.models.proof_template import STATUS_PUBLISHED, ProofTemplate

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_TABLE: Final[str] = "proof_templates"


def _to_iso8601(value: datetime | date) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    # date -> midnight UTC ISO
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).isoformat()


def _json_default(o: object):
    if isinstance(o, (datetime, date)):
        return _to_iso8601(o)
    if isinstance(o, set):
        return list(o)
    if isinstance(o, Path):
        return str(o)
    return str(o)


def _json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=_json_default)


def _json_or_none(txt: str | None) -> dict[str, Any] | None:
    if not txt:
        return None
    return json.loads(txt)


class LocalSQLiteProofTemplateRepository:
    """SQLite repository for proof templates owned by GitHub users."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        table: str = DEFAULT_TEMPLATES_TABLE,
    ) -> None:
        self._db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._table = table

        # Ensure directory exists
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute("PRAGMA journal_mode = WAL;")
        self._bootstrap()

    # --- schema ----------------------------------------------------------------

    def _bootstrap(self) -> None:
        """Create required tables and indexes if they don't exist."""
        with self._conn:
            self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    id TEXT PRIMARY KEY,
                    github_user_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    category TEXT,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            self._conn.execute(
                f"""CREATE INDEX IF NOT EXISTS idx_{self._table}_github_user
                    ON {self._table}(github_user_id);"""
            )
            self._conn.execute(
                f"""CREATE INDEX IF NOT EXISTS idx_{self._table}_status
                    ON {self._table}(status);"""
            )

    # --- queries ------------------------------------------------------------------

    def get(self, template_id: str) -> ProofTemplate | None:
        row = self._conn.execute(
            f"SELECT id, data FROM {self._table} WHERE id = ?;",
            (template_id,),
        ).fetchone()
        return self._row_to_template(row) if row else None

    def list_for_user(self, github_user_id: str) -> list[ProofTemplate]:
        """Return the user's templates, most recently updated first."""
        rows = self._conn.execute(
            f"""
            SELECT id, data FROM {self._table}
            WHERE github_user_id = ?
            ORDER BY updated_at DESC, created_at DESC;
            """,
            (github_user_id,),
        ).fetchall()
        return [self._row_to_template(r) for r in rows]

    # --- writes -------------------------------------------------------------------

    def create(self, template: ProofTemplate) -> ProofTemplate:
        if self.get(template.id) is not None:
            raise ValueError(f"Proof template {template.id} already exists")
        return self.save(template)

    def save(self, template: ProofTemplate) -> ProofTemplate:
        """Upsert a template and return the stored representation."""
        doc = template.to_document()
        payload = _json(doc)

        with self._conn:
            self._conn.execute(
                f"""
                INSERT INTO {self._table}(id, github_user_id, status, category, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    github_user_id = excluded.github_user_id,
                    status = excluded.status,
                    category = excluded.category,
                    data = excluded.data,
                    updated_at = excluded.updated_at;
                """,
                (
                    template.id,
                    template.github_user_id,
                    template.status,
                    template.category,
                    payload,
                    _to_iso8601(template.created_at),
                    _to_iso8601(template.updated_at),
                ),
            )

        return self.get(template.id) or self._row_to_template({"id": template.id, "data": payload})

    def delete(self, template_id: str) -> bool:
        with self._conn:
            cursor = self._conn.execute(f"DELETE FROM {self._table} WHERE id = ?;", (template_id,))
        return cursor.rowcount > 0

    def mark_published(self, template_id: str, vdr_uri: str, published_at: datetime) -> ProofTemplate:
        """Record that ``template_id`` was published to ``vdr_uri``."""
        template = self.get(template_id)
        if template is None:
            raise KeyError(f"Proof template {template_id} not found")
        template.status = STATUS_PUBLISHED
        template.vdr_uri = vdr_uri
        template.published_at = published_at
        template.updated_at = published_at
        logger.info(
            "Proof template marked published",
            extra={"event": "proof_template.published", "template_id": template_id, "vdr_uri": vdr_uri},
        )
        return self.save(template)

    def close(self) -> None:
        self._conn.close()

    # --- conversions --------------------------------------------------------------

    def _row_to_template(self, row: sqlite3.Row | dict | None) -> ProofTemplate:
        if not row:
            raise KeyError("Proof template row not found")
        row_id = row["id"] if isinstance(row, sqlite3.Row) else row.get("id")
        data_txt = row["data"] if isinstance(row, sqlite3.Row) else row.get("data")
        data = _json_or_none(data_txt) or {}
        data["id"] = str(row_id)
        return ProofTemplate.from_document(data)


def create_repository(**kwargs: Any) -> LocalSQLiteProofTemplateRepository:
    """Factory helper to create a repository instance."""
    # Allow env overrides for convenience
    db_path = kwargs.pop("db_path", None) or os.getenv("CREDTOOLS_DB_PATH")
    return LocalSQLiteProofTemplateRepository(db_path=db_path, **kwargs)
