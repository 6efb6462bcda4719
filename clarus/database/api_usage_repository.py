"""
API usage repository - one row per external API call for cost accounting.
"""

from .connection import DatabaseConnection
from .converters import row_to_api_usage, format_timestamp, utc_now
from .models import DBApiUsage


class ApiUsageRepository:
    """Repository for the api_usage ledger."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(
        self,
        api_name: str,
        operation: str,
        status: str,
        model_name: str | None = None,
        tokens_input: int = 0,
        tokens_output: int = 0,
        response_time_ms: int | None = None,
        content_id: int | None = None,
        user_id: int | None = None,
        error_message: str | None = None,
    ) -> int:
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO api_usage
                       (user_id, content_id, api_name, operation, model_name, tokens_input,
                        tokens_output, response_time_ms, status, error_message, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (user_id, content_id, api_name, operation, model_name, tokens_input,
                 tokens_output, response_time_ms, status, error_message,
                 format_timestamp(utc_now()))
            )
            return cursor.lastrowid

    def list(self, content_id: int | None = None, api_name: str | None = None) -> list[DBApiUsage]:
        query = "SELECT * FROM api_usage WHERE 1 = 1"
        params: list = []
        if content_id is not None:
            query += " AND content_id = ?"
            params.append(content_id)
        if api_name is not None:
            query += " AND api_name = ?"
            params.append(api_name)
        with self._db.conn() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
            return [row_to_api_usage(row) for row in rows]
