"""Small presentation helpers for catalog records."""

from datetime import date, datetime, timezone
from typing import List, Optional

PREVIEW_LENGTH = 100
EMPTY_LECTURE_PREVIEW = "강의 내용이 없습니다."


def format_duration(seconds: Optional[int]) -> str:
    """Format seconds as `m:ss`; missing or zero durations are `0:00`."""
    if not seconds:
        return "0:00"
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}:{secs:02d}"


def media_type(youtube_video_id: Optional[str], audio_url: Optional[str]) -> Optional[str]:
    """Return which player a lecture uses. YouTube wins when both are set."""
    if youtube_video_id:
        return "youtube"
    if audio_url:
        return "audio"
    return None


def youtube_embed_url(video_id: Optional[str]) -> Optional[str]:
    if not video_id:
        return None
    return f"https://www.youtube.com/embed/{video_id}"


def truncate(text: str, length: int = PREVIEW_LENGTH) -> str:
    if len(text) > length:
        return text[:length] + "..."
    return text


def lecture_preview(description: Optional[str], transcript: Optional[str]) -> str:
    """Short card text: the description, else the transcript, else a placeholder."""
    if description:
        return truncate(description)
    if transcript:
        return truncate(transcript)
    return EMPTY_LECTURE_PREVIEW


def split_keywords(keywords: Optional[str]) -> List[str]:
    """Split a comma-joined keyword string, dropping blanks."""
    return [k.strip() for k in (keywords or "").split(",") if k.strip()]


def parse_timestamp(value) -> Optional[datetime]:
    """Convert a stored timestamp (datetime, date or ISO string) to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_iso_date(value: Optional[str]) -> Optional[str]:
    """Normalize `2026-01-01` style input to a full UTC ISO timestamp.

    Unparseable strings are kept as given; ad fields are admin-trusted.
    """
    if not value:
        return None
    try:
        return parse_timestamp(value).isoformat()
    except ValueError:
        return value
