"""ビルド名（テンプレート名 + 短縮名）の決定的生成.

解決済みコミットと日時、ref、実行番号から成果物名に使うビルド名を作ります。

テンプレート:
    {project-name}-{datetime}-{hash}-{shortname}+{platform}+{configuration}+{branch}

このモジュールが埋めるのは {datetime}/{hash}/{branch}/{shortname} のみです。
{project-name}/{platform}/{configuration} は下流のビルドステップが埋めるため
未置換のまま残します。
"""

from __future__ import annotations

from datetime import UTC, datetime

from buildref.core.wordlist import select_word
from buildref.types import BuildDescription, BuildName

TEMPLATE = "{project-name}-{datetime}-{hash}-{shortname}+{platform}+{configuration}+{branch}"

SHORT_HASH_LENGTH = 7


def _as_utc(date: datetime) -> datetime:
    """naive な日時はUTCとしてそのまま扱い、aware な日時はUTCで表現し直す."""
    if date.tzinfo is None:
        return date
    return date.astimezone(UTC)


def format_long_date(date: datetime) -> str:
    """`YYMMDD-HHMMSS`（UTC、ゼロ埋め）."""
    d = _as_utc(date)
    return f"{d.year % 100:02d}{d.month:02d}{d.day:02d}-{d.hour:02d}{d.minute:02d}{d.second:02d}"


def format_short_date(date: datetime) -> str:
    """`MMDD`（UTC、ゼロ埋め）."""
    d = _as_utc(date)
    return f"{d.month:02d}{d.day:02d}"


def short_hash(commit: str) -> str:
    # 7文字未満のコミットID（Perforceの "@123" 等）は全体をそのまま使う
    return commit[:SHORT_HASH_LENGTH].lower()


def generate(ref: str, commit: str, date: datetime, run_number: str) -> BuildName:
    """ビルド名を生成する.

    同じ入力に対しては常にバイト単位で同一の結果を返します。
    短縮名の単語は、{shortname} を置換する直前のテンプレート文字列
    （日時・ハッシュ・ブランチ置換済み）をシードとして選びます。

    Args:
        ref: ブランチ/タグ/PR ref/チェンジリスト指定
        commit: 解決済みのコミットID
        date: ビルド日時（UTC）
        run_number: CIの実行番号（同一refの繰り返しビルドを区別する）

    Returns:
        BuildName
    """
    long_date = format_long_date(date)
    short_date = format_short_date(date)

    # 区切りなしで連結する（同一refのビルドは実行番号だけが異なる）
    numbered_branch = f"{ref}{run_number}"

    name = TEMPLATE
    name = name.replace("{hash}", short_hash(commit), 1)
    name = name.replace("{datetime}", long_date, 1)
    name = name.replace("{branch}", numbered_branch, 1)

    short_name = short_date + select_word(name)
    name = name.replace("{shortname}", short_name, 1)

    return BuildName(
        template=name,
        short=short_name,
        time=date,
        ref=ref,
        commit=commit,
        build=short_name,
    )


def generate_from_description(desc: BuildDescription, run_number: str) -> BuildName:
    return generate(desc.ref, desc.commit, desc.date, run_number)
