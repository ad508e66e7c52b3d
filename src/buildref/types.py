"""リゾルバとビルド名生成で受け渡すデータ型.

いずれも一度だけ構築して返す不変オブジェクトです（永続化はしない）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Provider(str, Enum):
    """対応しているバージョン管理バックエンド."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    PERFORCE = "perforce"


@dataclass(frozen=True)
class FileRequest:
    path: str
    required: bool = False


@dataclass(frozen=True)
class RepositoryFile:
    path: str
    content: str


@dataclass(frozen=True)
class RepositoryInfo:
    """refの解決結果.

    Attributes:
        commit: 不変なコミットID（gitは40桁hex、Perforceは "@<changelist>"）
        commit_date: コミット日時（UTC）
        token: 取得したアクセストークン（秘匿値。reprには出さない）
        files: 取得できた要求ファイル（要求順）
    """

    commit: str
    commit_date: datetime
    token: str = field(repr=False)
    files: list[RepositoryFile] = field(default_factory=list)


@dataclass(frozen=True)
class BuildDescription:
    ref: str
    commit: str
    date: datetime


@dataclass(frozen=True)
class BuildName:
    """生成されたビルド名.

    `short` は常に `template` の中にそのまま埋め込まれています。
    `time`/`ref`/`commit`/`build` は利便性のための付帯情報です。
    """

    template: str
    short: str
    time: datetime
    ref: str
    commit: str
    build: str

    def as_dict(self) -> dict[str, str]:
        time = self.time if self.time.tzinfo is not None else self.time.replace(tzinfo=UTC)
        return {
            "template": self.template,
            "short": self.short,
            "time": time.astimezone(UTC).isoformat(),
            "ref": self.ref,
            "commit": self.commit,
            "build": self.build,
        }


@dataclass(frozen=True)
class CleanupResult:
    """post処理（認証情報の破棄など）の結果.

    失敗は例外にせず `warnings` に積み、呼び出し側がログに出すだけにします。
    """

    provider: str
    actions: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings
