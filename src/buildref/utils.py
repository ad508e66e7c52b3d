"""日時変換の小さなヘルパー."""

from __future__ import annotations

from datetime import UTC, datetime


def parse_timestamp(value: str) -> datetime:
    """API が返す ISO-8601 文字列をUTCの aware datetime に変換する.

    タイムゾーン表記が無いものはUTCとして扱います。
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def from_epoch(seconds: int | str) -> datetime:
    """エポック秒（Perforce の change time 等）をUTCの datetime に変換する."""
    return datetime.fromtimestamp(int(seconds), tz=UTC)
