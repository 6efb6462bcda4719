"""
Content repository - content items and their transcription bookkeeping.
"""

import json
from datetime import datetime

from .connection import DatabaseConnection
from .converters import row_to_content, format_timestamp, utc_now
from .models import DBContent


class ContentRepository:
    """Repository for content item operations."""

    # Columns that may be changed through update()
    UPDATABLE_FIELDS = frozenset({
        "title",
        "author",
        "description",
        "thumbnail_url",
        "duration",
        "detected_tone",
        "analysis_language",
        "processing_status",
        "speaker_count",
    })

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def create(
        self,
        user_id: int,
        url: str,
        content_type: str,
        title: str | None = None,
    ) -> int:
        """Create a content item in pending state. Returns content ID."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO content (user_id, url, type, title, processing_status, date_added)
                   VALUES (?, ?, ?, ?, 'pending', ?)""",
                (user_id, url, content_type, title, format_timestamp(utc_now()))
            )
            return cursor.lastrowid

    def get(self, content_id: int) -> DBContent | None:
        """Get a content item by ID."""
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM content WHERE id = ?", (content_id,)).fetchone()
            return row_to_content(row) if row else None

    def get_by_transcript_id(self, transcript_id: str) -> DBContent | None:
        """Get the content item waiting on a transcription job."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM content WHERE podcast_transcript_id = ?",
                (transcript_id,)
            ).fetchone()
            return row_to_content(row) if row else None

    def update(self, content_id: int, **fields):
        """Update whitelisted metadata columns."""
        unknown = set(fields) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update content fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._db.conn() as conn:
            conn.execute(
                f"UPDATE content SET {assignments} WHERE id = ?",
                (*fields.values(), content_id)
            )

    def set_tags(self, content_id: int, tags: list[str]):
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE content SET tags = ? WHERE id = ?",
                (json.dumps(tags), content_id)
            )

    def set_full_text(self, content_id: int, full_text: str | None):
        """Unconditionally replace the extracted text (or failure sentinel)."""
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE content SET full_text = ? WHERE id = ?",
                (full_text, content_id)
            )

    def set_full_text_if_empty(
        self,
        content_id: int,
        full_text: str,
        duration: int | None = None,
        speaker_count: int | None = None,
    ) -> bool:
        """
        Write the text only if no text (or failure sentinel) has been saved yet.

        Returns:
            True if this call performed the write
        """
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE content
                   SET full_text = ?,
                       duration = COALESCE(?, duration),
                       speaker_count = COALESCE(?, speaker_count)
                   WHERE id = ? AND (full_text IS NULL OR full_text = '')""",
                (full_text, duration, speaker_count, content_id)
            )
            return cursor.rowcount == 1

    def mark_transcription_submitted(
        self,
        content_id: int,
        transcript_id: str,
        submitted_at: datetime | None = None,
    ):
        """Record an outstanding transcription job and clear any previous text."""
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE content
                   SET podcast_transcript_id = ?,
                       transcript_submitted_at = ?,
                       full_text = NULL,
                       processing_status = 'transcribing'
                   WHERE id = ?""",
                (transcript_id, format_timestamp(submitted_at or utc_now()), content_id)
            )

    def find_stuck_transcriptions(self, submitted_before: datetime, limit: int = 10) -> list[DBContent]:
        """Podcast items with an outstanding job, no text, submitted before the cutoff."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM content
                   WHERE type = 'podcast'
                     AND podcast_transcript_id IS NOT NULL
                     AND (full_text IS NULL OR full_text = '')
                     AND transcript_submitted_at < ?
                   ORDER BY transcript_submitted_at
                   LIMIT ?""",
                (format_timestamp(submitted_before), limit)
            ).fetchall()
            return [row_to_content(row) for row in rows]

    def find_cache_candidates(
        self,
        url: str,
        exclude_user_id: int,
        added_since: datetime,
        limit: int = 5,
    ) -> list[DBContent]:
        """Other users' items for the same URL with usable text, newest first."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM content
                   WHERE url = ?
                     AND user_id != ?
                     AND full_text IS NOT NULL AND full_text != ''
                     AND full_text NOT LIKE 'PROCESSING_FAILED::%'
                     AND date_added >= ?
                   ORDER BY date_added DESC, id DESC
                   LIMIT ?""",
                (url, exclude_user_id, format_timestamp(added_since), limit)
            ).fetchall()
            return [row_to_content(row) for row in rows]
