"""
Summary repository - one analysis row per (content, language).

Every write is an upsert or a conditional update keyed on
UNIQUE(content_id, language), so retries and concurrent requests never
produce a second row for the same pair.
"""

import json
import sqlite3
from typing import Any

from .connection import DatabaseConnection
from .converters import row_to_summary, encode_section, format_timestamp, utc_now
from .models import DBSummary, SECTION_ORDER, SECTION_STATUSES


def progress_status(row: sqlite3.Row | DBSummary) -> str:
    """
    Status for the longest fully-populated prefix of SECTION_ORDER.

    Only reaches 'complete' when every section is present.
    """
    status = "pending"
    for name in SECTION_ORDER:
        value = row[name] if isinstance(row, sqlite3.Row) else getattr(row, name)
        if value is None:
            break
        status = SECTION_STATUSES[name]
    return status


class SummaryRepository:
    """Repository for analysis summaries."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def _fetch(self, conn: sqlite3.Connection, content_id: int, language: str) -> sqlite3.Row | None:
        return conn.execute(
            "SELECT * FROM summaries WHERE content_id = ? AND language = ?",
            (content_id, language)
        ).fetchone()

    def get(self, content_id: int, language: str = "en") -> DBSummary | None:
        with self._db.conn() as conn:
            row = self._fetch(conn, content_id, language)
            return row_to_summary(row) if row else None

    def get_completed_source(self, content_id: int, prefer_language: str = "en") -> DBSummary | None:
        """Completed summary in the preferred language, else any completed language."""
        with self._db.conn() as conn:
            row = conn.execute(
                """SELECT * FROM summaries
                   WHERE content_id = ? AND processing_status = 'complete'
                   ORDER BY CASE WHEN language = ? THEN 0 ELSE 1 END, id
                   LIMIT 1""",
                (content_id, prefer_language)
            ).fetchone()
            return row_to_summary(row) if row else None

    def start_analysis(
        self,
        content_id: int,
        user_id: int | None,
        language: str,
        model_name: str | None = None,
    ):
        """Create or reset the placeholder row before the first AI call."""
        now = format_timestamp(utc_now())
        cleared = ", ".join(f"{name} = NULL" for name in SECTION_ORDER)
        with self._db.conn() as conn:
            conn.execute(
                f"""INSERT INTO summaries
                       (content_id, user_id, language, processing_status, model_name, created_at, updated_at)
                    VALUES (?, ?, ?, 'pending', ?, ?, ?)
                    ON CONFLICT(content_id, language) DO UPDATE SET
                       {cleared},
                       failed_sections = NULL,
                       processing_status = 'pending',
                       model_name = excluded.model_name,
                       updated_at = excluded.updated_at""",
                (content_id, user_id, language, model_name, now, now)
            )

    def write_section(
        self,
        content_id: int,
        language: str,
        section: str,
        value: Any,
        model_name: str | None = None,
    ) -> str:
        """
        Persist one section and advance the row's status in the same transaction.

        Returns:
            The processing status after the write
        """
        if section not in SECTION_STATUSES:
            raise ValueError(f"Unknown summary section: {section}")
        with self._db.conn() as conn:
            conn.execute(
                f"""UPDATE summaries
                    SET {section} = ?, model_name = COALESCE(?, model_name), updated_at = ?
                    WHERE content_id = ? AND language = ?""",
                (encode_section(section, value), model_name, format_timestamp(utc_now()),
                 content_id, language)
            )
            row = self._fetch(conn, content_id, language)
            if row is None:
                raise LookupError(f"No summary row for content {content_id} ({language})")
            status = progress_status(row)
            conn.execute(
                "UPDATE summaries SET processing_status = ? WHERE id = ?",
                (status, row["id"])
            )
            return status

    def finish_analysis(self, content_id: int, language: str, failed_sections: list[str]) -> str:
        """
        Settle the final status once every section call has returned.

        'complete' when all sections are present, 'error' when none are,
        otherwise 'partial'.
        """
        with self._db.conn() as conn:
            row = self._fetch(conn, content_id, language)
            if row is None:
                raise LookupError(f"No summary row for content {content_id} ({language})")
            status = progress_status(row)
            if status != "complete":
                if all(row[name] is None for name in SECTION_ORDER):
                    status = "error"
                else:
                    status = "partial"
            conn.execute(
                """UPDATE summaries
                   SET processing_status = ?, failed_sections = ?, updated_at = ?
                   WHERE id = ?""",
                (status, json.dumps(failed_sections) if failed_sections else None,
                 format_timestamp(utc_now()), row["id"])
            )
            return status

    def mark_error(
        self,
        content_id: int,
        user_id: int | None,
        language: str,
        message: str,
        status: str = "error",
    ):
        """Upsert a failed (or refused) row carrying a human-readable cause in brief_overview."""
        now = format_timestamp(utc_now())
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO summaries
                       (content_id, user_id, language, brief_overview, processing_status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(content_id, language) DO UPDATE SET
                       brief_overview = excluded.brief_overview,
                       processing_status = excluded.processing_status,
                       updated_at = excluded.updated_at""",
                (content_id, user_id, language, message, status, now, now)
            )

    def claim_translation(self, content_id: int, user_id: int | None, language: str) -> bool:
        """
        Atomically mark a (content, language) row as translating.

        Returns:
            False if the row is already translating or complete
        """
        now = format_timestamp(utc_now())
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO summaries
                       (content_id, user_id, language, processing_status, created_at, updated_at)
                   VALUES (?, ?, ?, 'translating', ?, ?)
                   ON CONFLICT(content_id, language) DO UPDATE SET
                       processing_status = 'translating',
                       updated_at = excluded.updated_at
                   WHERE summaries.processing_status NOT IN ('translating', 'complete')""",
                (content_id, user_id, language, now, now)
            )
            return cursor.rowcount == 1

    def save_translation(
        self,
        content_id: int,
        language: str,
        sections: dict[str, Any],
        model_name: str | None,
    ):
        """Write every translated section and mark the row complete."""
        names = [name for name in SECTION_ORDER if name in sections]
        assignments = "".join(f"{name} = ?, " for name in names)
        values = [encode_section(name, sections[name]) for name in names]
        with self._db.conn() as conn:
            conn.execute(
                f"""UPDATE summaries
                    SET {assignments}model_name = ?, failed_sections = NULL,
                        processing_status = 'complete', updated_at = ?
                    WHERE content_id = ? AND language = ?""",
                (*values, model_name, format_timestamp(utc_now()), content_id, language)
            )

    def set_status(self, content_id: int, language: str, status: str):
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE summaries SET processing_status = ?, updated_at = ? WHERE content_id = ? AND language = ?",
                (status, format_timestamp(utc_now()), content_id, language)
            )
