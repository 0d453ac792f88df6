from datetime import datetime, timezone

from jmkcms.utils.formatting import (
    format_duration,
    lecture_preview,
    media_type,
    normalize_iso_date,
    parse_timestamp,
    split_keywords,
)


def test_format_duration():
    assert format_duration(None) == "0:00"
    assert format_duration(0) == "0:00"
    assert format_duration(59) == "0:59"
    assert format_duration(3725) == "62:05"


def test_media_type_precedence():
    assert media_type("abc", "https://x/a.mp3") == "youtube"
    assert media_type("", "https://x/a.mp3") == "audio"
    assert media_type("", "") is None


def test_lecture_preview_fallbacks():
    assert lecture_preview("desc", "transcript") == "desc"
    assert lecture_preview("", "t" * 101) == "t" * 100 + "..."
    assert lecture_preview(None, None) == "강의 내용이 없습니다."


def test_split_keywords():
    assert split_keywords(" 재해, 비율 ,,") == ["재해", "비율"]
    assert split_keywords(None) == []


def test_timestamps():
    assert parse_timestamp("2026-01-01") == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2026-01-01T09:00:00.000Z").hour == 9
    assert parse_timestamp(None) is None
    assert normalize_iso_date("2026-12-31") == "2026-12-31T00:00:00+00:00"
    assert normalize_iso_date("next week") == "next week"
    assert normalize_iso_date("") is None
