"""
Database row converters - convert SQLite rows to dataclasses.

Timestamps are stored as fixed-width ISO-8601 UTC strings so that string
comparison in SQL matches chronological order.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .models import (
    DBUser,
    DBContent,
    DBSummary,
    DBSubscription,
    DBFeedItem,
    DBUsage,
    DBApiUsage,
    DBNotification,
    JSON_SECTIONS,
    SECTION_ORDER,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a datetime as a fixed-width UTC ISO string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp; naive values are treated as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _loads(value: str | None, default: Any = None) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def encode_section(name: str, value: Any) -> str | None:
    """Encode a summary section value for storage."""
    if value is None:
        return None
    if name in JSON_SECTIONS:
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def decode_section(name: str, value: str | None) -> Any:
    if value is None:
        return None
    if name in JSON_SECTIONS:
        return _loads(value)
    return value


def row_to_user(row: sqlite3.Row) -> DBUser:
    """Convert a database row to a DBUser."""
    return DBUser(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        tier=row["tier"],
        day_pass_expires_at=row["day_pass_expires_at"],
        created_at=parse_timestamp(row["created_at"]) or utc_now(),
    )


def row_to_content(row: sqlite3.Row) -> DBContent:
    """Convert a database row to a DBContent."""
    return DBContent(
        id=row["id"],
        user_id=row["user_id"],
        url=row["url"],
        type=row["type"],
        title=row["title"],
        full_text=row["full_text"],
        processing_status=row["processing_status"],
        date_added=parse_timestamp(row["date_added"]) or utc_now(),
        author=row["author"],
        description=row["description"],
        thumbnail_url=row["thumbnail_url"],
        duration=row["duration"],
        tags=_loads(row["tags"], []),
        detected_tone=row["detected_tone"],
        analysis_language=row["analysis_language"],
        podcast_transcript_id=row["podcast_transcript_id"],
        transcript_submitted_at=parse_timestamp(row["transcript_submitted_at"]),
        speaker_count=row["speaker_count"],
    )


def row_to_summary(row: sqlite3.Row) -> DBSummary:
    """Convert a database row to a DBSummary."""
    sections = {name: decode_section(name, row[name]) for name in SECTION_ORDER}
    return DBSummary(
        id=row["id"],
        content_id=row["content_id"],
        user_id=row["user_id"],
        language=row["language"],
        processing_status=row["processing_status"],
        model_name=row["model_name"],
        failed_sections=_loads(row["failed_sections"], []),
        updated_at=parse_timestamp(row["updated_at"]),
        **sections,
    )


def row_to_subscription(row: sqlite3.Row) -> DBSubscription:
    """Convert a database row to a DBSubscription."""
    return DBSubscription(
        id=row["id"],
        user_id=row["user_id"],
        feed_type=row["feed_type"],
        feed_url=row["feed_url"],
        name=row["name"],
        check_frequency_hours=row["check_frequency_hours"],
        last_checked_at=parse_timestamp(row["last_checked_at"]),
        last_item_date=parse_timestamp(row["last_item_date"]),
        consecutive_failures=row["consecutive_failures"],
        last_error=row["last_error"],
        is_active=bool(row["is_active"]),
        feed_auth_header_encrypted=row["feed_auth_header_encrypted"],
    )


def row_to_feed_item(row: sqlite3.Row) -> DBFeedItem:
    """Convert a database row to a DBFeedItem."""
    return DBFeedItem(
        id=row["id"],
        subscription_id=row["subscription_id"],
        user_id=row["user_id"],
        item_url=row["item_url"],
        title=row["title"],
        published_at=parse_timestamp(row["published_at"]),
        description=row["description"],
        duration_seconds=row["duration_seconds"],
        thumbnail_url=row["thumbnail_url"],
        video_id=row["video_id"],
        is_notified=bool(row["is_notified"]),
    )


def row_to_usage(row: sqlite3.Row) -> DBUsage:
    """Convert a database row to a DBUsage."""
    return DBUsage(
        user_id=row["user_id"],
        period=row["period"],
        analyses_count=row["analyses_count"],
        chat_messages_count=row["chat_messages_count"],
        share_links_count=row["share_links_count"],
        exports_count=row["exports_count"],
        bookmarks_count=row["bookmarks_count"],
    )


def row_to_api_usage(row: sqlite3.Row) -> DBApiUsage:
    """Convert a database row to a DBApiUsage."""
    return DBApiUsage(
        id=row["id"],
        api_name=row["api_name"],
        operation=row["operation"],
        status=row["status"],
        model_name=row["model_name"],
        tokens_input=row["tokens_input"],
        tokens_output=row["tokens_output"],
        response_time_ms=row["response_time_ms"],
        content_id=row["content_id"],
        user_id=row["user_id"],
        error_message=row["error_message"],
    )


def row_to_notification(row: sqlite3.Row) -> DBNotification:
    """Convert a database row to a DBNotification."""
    return DBNotification(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        body=row["body"],
        payload=_loads(row["payload"]),
        is_read=bool(row["is_read"]),
        created_at=parse_timestamp(row["created_at"]) or utc_now(),
    )
