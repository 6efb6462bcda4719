"""
Database connection management and schema initialization.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class DatabaseConnection:
    """Manages database connection and schema."""

    def __init__(self, db_path: Path, timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        connection = sqlite3.connect(self.db_path, timeout=self.timeout)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _init_schema(self):
        """Initialize database schema."""
        with self.conn() as connection:
            connection.execute("PRAGMA journal_mode = WAL")
            connection.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT UNIQUE NOT NULL,
                    name TEXT,
                    tier TEXT NOT NULL DEFAULT 'free',
                    day_pass_expires_at TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS content (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    url TEXT NOT NULL,
                    type TEXT NOT NULL CHECK(type IN ('youtube', 'article', 'x_post', 'podcast')),
                    title TEXT,
                    author TEXT,
                    description TEXT,
                    thumbnail_url TEXT,
                    duration INTEGER,
                    full_text TEXT,
                    tags TEXT,
                    detected_tone TEXT,
                    analysis_language TEXT NOT NULL DEFAULT 'en',
                    processing_status TEXT NOT NULL DEFAULT 'pending',
                    podcast_transcript_id TEXT UNIQUE,
                    transcript_submitted_at TEXT,
                    date_added TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS summaries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_id INTEGER NOT NULL REFERENCES content(id) ON DELETE CASCADE,
                    user_id INTEGER,
                    language TEXT NOT NULL DEFAULT 'en',
                    brief_overview TEXT,
                    triage TEXT,
                    truth_check TEXT,
                    action_items TEXT,
                    mid_length_summary TEXT,
                    detailed_summary TEXT,
                    failed_sections TEXT,
                    processing_status TEXT NOT NULL DEFAULT 'pending',
                    model_name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(content_id, language)
                );

                CREATE TABLE IF NOT EXISTS feed_subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    feed_type TEXT NOT NULL CHECK(feed_type IN ('podcast', 'youtube')),
                    feed_url TEXT NOT NULL,
                    name TEXT NOT NULL,
                    check_frequency_hours INTEGER NOT NULL DEFAULT 24,
                    last_checked_at TEXT,
                    last_item_date TEXT,
                    consecutive_failures INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    feed_auth_header_encrypted TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE(user_id, feed_type, feed_url)
                );

                CREATE TABLE IF NOT EXISTS feed_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subscription_id INTEGER NOT NULL REFERENCES feed_subscriptions(id) ON DELETE CASCADE,
                    user_id INTEGER NOT NULL,
                    item_url TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    published_at TEXT,
                    duration_seconds INTEGER,
                    thumbnail_url TEXT,
                    is_notified INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    UNIQUE(subscription_id, item_url)
                );

                CREATE TABLE IF NOT EXISTS usage_tracking (
                    user_id INTEGER NOT NULL,
                    period TEXT NOT NULL,
                    analyses_count INTEGER NOT NULL DEFAULT 0,
                    chat_messages_count INTEGER NOT NULL DEFAULT 0,
                    share_links_count INTEGER NOT NULL DEFAULT 0,
                    exports_count INTEGER NOT NULL DEFAULT 0,
                    bookmarks_count INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (user_id, period)
                );

                CREATE TABLE IF NOT EXISTS api_usage (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER,
                    content_id INTEGER,
                    api_name TEXT NOT NULL,
                    operation TEXT NOT NULL,
                    model_name TEXT,
                    tokens_input INTEGER NOT NULL DEFAULT 0,
                    tokens_output INTEGER NOT NULL DEFAULT 0,
                    response_time_ms INTEGER,
                    status TEXT NOT NULL,
                    error_message TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    body TEXT NOT NULL,
                    payload TEXT,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_content_user ON content(user_id, date_added DESC);
                CREATE INDEX IF NOT EXISTS idx_content_transcript ON content(podcast_transcript_id);
                CREATE INDEX IF NOT EXISTS idx_subscriptions_due ON feed_subscriptions(feed_type, is_active, last_checked_at);
                CREATE INDEX IF NOT EXISTS idx_feed_items_subscription ON feed_items(subscription_id, published_at DESC);
                CREATE INDEX IF NOT EXISTS idx_api_usage_content ON api_usage(content_id);
                CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC);
            """)

            # Migrations
            self._migrate_add_column(connection, "content", "speaker_count", "INTEGER")
            self._migrate_add_column(connection, "feed_items", "video_id", "TEXT")

    def _migrate_add_column(
        self,
        conn: sqlite3.Connection,
        table: str,
        column: str,
        column_type: str
    ):
        """Add a column to a table if it doesn't exist."""
        cursor = conn.execute(f"PRAGMA table_info({table})")
        columns = [row[1] for row in cursor.fetchall()]
        if column not in columns:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
