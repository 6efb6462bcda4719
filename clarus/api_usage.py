"""
Cost accounting for external API calls.

Every AI, extraction, search and transcription call is recorded with its
latency, token counts and outcome. Logging failures never break the caller.
"""

import logging
import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)


class ApiUsageLogger:
    """Writes rows to the api_usage table."""

    def __init__(self, db: "Database | None"):
        self.db = db

    def log(
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
    ):
        logger.debug(
            f"api_usage {api_name}/{operation} model={model_name} status={status} "
            f"tokens={tokens_input}/{tokens_output} latency={response_time_ms}ms"
        )
        if self.db is None:
            return
        try:
            self.db.api_usage.add(
                api_name=api_name,
                operation=operation,
                status=status,
                model_name=model_name,
                tokens_input=tokens_input,
                tokens_output=tokens_output,
                response_time_ms=response_time_ms,
                content_id=content_id,
                user_id=user_id,
                error_message=(error_message or None) and error_message[:500],
            )
        except sqlite3.Error as e:
            logger.warning(f"Failed to record API usage for {api_name}/{operation}: {e}")
