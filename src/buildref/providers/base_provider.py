"""ソース管理バックエンド用プロバイダ（基底クラス）.

GitHub/GitLab/Bitbucket/Perforce を共通インターフェースで扱うための抽象基底クラスを
定義します。各プロバイダはこのクラスを継承し、resolve()/cleanup() と
ファイル1件の取得処理を実装します。
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping

from loguru import logger

from buildref.core.exceptions import ConfigurationError, MissingRequiredFilesError
from buildref.types import CleanupResult, FileRequest, Provider, RepositoryFile, RepositoryInfo

DEFAULT_TIMEOUT = 30.0


class SourceProvider(ABC):
    """refをコミットに解決するプロバイダの基底クラス.

    resolve() で取得した認証情報のうち post 処理で必要なものは post_state() で
    明示的に取り出し、呼び出し側が保存して cleanup() に渡します。
    プロセス全体で共有する状態は持ちません。
    """

    provider: Provider
    display_name: str = ""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = os.environ if env is None else env
        self._post_state: dict[str, str] = {}
        self._secrets: list[str] = []

    @abstractmethod
    def resolve(
        self,
        repositories: list[str],
        ref: str,
        files: list[FileRequest],
    ) -> RepositoryInfo:
        """refをコミットID + 日時に解決し、要求ファイルを取得する.

        Raises:
            ConfigurationError: 認証情報や入力が不足している場合
            ResolutionError: refが見つからない/曖昧な場合
            MissingRequiredFilesError: 必須ファイルが存在しない場合
        """
        ...

    @abstractmethod
    def cleanup(self, state: Mapping[str, str]) -> CleanupResult:
        """resolve() で取得した認証情報を破棄する（ベストエフォート）.

        上流の失敗は例外にせず CleanupResult.warnings に記録します。
        """
        ...

    def post_state(self) -> dict[str, str]:
        """cleanup() に渡すべき値（トークン等）を返す."""
        return dict(self._post_state)

    def _save_state(self, key: str, value: str) -> None:
        self._post_state[key] = value

    def secrets(self) -> list[str]:
        """ここまでに読み込んだ/取得した秘匿値（ログのマスク対象）を取得順に返す."""
        return list(self._secrets)

    def _add_secret(self, value: str) -> None:
        if value and value not in self._secrets:
            self._secrets.append(value)

    def _require_env(self, key: str, hint: str | None = None) -> str:
        value = self._env.get(key)
        if not value:
            message = f"{self.display_name} repositories must supply `env.{key}`"
            if hint:
                message = f"{message} ({hint})"
            raise ConfigurationError(message)
        return value

    @abstractmethod
    def _fetch_file(self, path: str) -> str | None:
        """解決済みコミットのファイル1件を取得する.

        Returns:
            ファイル内容。存在しない（404相当）場合は None

        Raises:
            httpx.HTTPStatusError: 404以外の失敗（そのまま伝播させる）
        """
        ...

    def _fetch_files(self, files: list[FileRequest]) -> list[RepositoryFile]:
        """要求ファイルを要求順に取得する.

        存在しないファイルはスキップし、必須ファイルの欠落は全件取得後に
        まとめて1回だけ MissingRequiredFilesError として送出します。
        """
        fetched: list[RepositoryFile] = []
        missing_required: list[str] = []

        for request in files:
            try:
                content = self._fetch_file(request.path)
            except Exception:
                logger.error(f"Failed to get file '{request.path}'")
                raise

            if content is None:
                if request.required:
                    missing_required.append(request.path)
                else:
                    logger.info(f"Optional file not found, skipping: {request.path}")
                continue

            fetched.append(RepositoryFile(path=request.path, content=content))

        if missing_required:
            raise MissingRequiredFilesError(missing_required)

        logger.info(f"Fetched {len(fetched)}/{len(files)} requested files")
        return fetched
