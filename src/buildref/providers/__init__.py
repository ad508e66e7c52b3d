"""ソース管理バックエンドごとのプロバイダ群.

プロバイダは閉じた集合（Provider 列挙）で、設定値から create_provider() で選択します。
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from buildref.core.exceptions import ConfigurationError
from buildref.types import Provider

from .base_provider import SourceProvider
from .bitbucket_provider import BitbucketProvider
from .github_provider import GithubProvider
from .gitlab_provider import GitlabProvider
from .perforce_provider import PerforceProvider

PROVIDERS: dict[Provider, type[SourceProvider]] = {
    Provider.GITHUB: GithubProvider,
    Provider.GITLAB: GitlabProvider,
    Provider.BITBUCKET: BitbucketProvider,
    Provider.PERFORCE: PerforceProvider,
}


def parse_provider(name: str | Provider) -> Provider:
    """プロバイダ名（大文字小文字を区別しない）を Provider に変換する.

    Raises:
        ConfigurationError: 未知のプロバイダ名の場合
    """
    if isinstance(name, Provider):
        return name
    try:
        return Provider(name.strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown provider '{name}'") from None


def create_provider(
    name: str | Provider,
    env: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> SourceProvider:
    """プロバイダ名から SourceProvider を生成する.

    Args:
        name: github/gitlab/bitbucket/perforce（大文字小文字を区別しない）
        env: 資格情報を読む環境変数マッピング（省略時は os.environ）
        **kwargs: プロバイダ固有の引数（transport, runner 等）

    Returns:
        SourceProvider
    """
    provider = parse_provider(name)
    return PROVIDERS[provider](env=env, **kwargs)


__all__ = [
    "SourceProvider",
    "GithubProvider",
    "GitlabProvider",
    "BitbucketProvider",
    "PerforceProvider",
    "PROVIDERS",
    "parse_provider",
    "create_provider",
]
