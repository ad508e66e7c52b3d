"""Unit tests for the shared provider behaviour."""

from collections.abc import Mapping
from datetime import UTC, datetime

import httpx
import pytest

from buildref.core.exceptions import ConfigurationError, MissingRequiredFilesError
from buildref.providers import (
    BitbucketProvider,
    GithubProvider,
    GitlabProvider,
    PerforceProvider,
    create_provider,
    parse_provider,
)
from buildref.providers.base_provider import SourceProvider
from buildref.types import CleanupResult, FileRequest, Provider, RepositoryInfo


class _DictProvider(SourceProvider):
    """メモリ上のファイル辞書を返すテスト用プロバイダ."""

    provider = Provider.GITHUB
    display_name = "Test"

    def __init__(self, contents: dict[str, str], env: Mapping[str, str] | None = None) -> None:
        super().__init__(env or {})
        self.contents = contents
        self.fetched: list[str] = []

    def resolve(self, repositories, ref, files) -> RepositoryInfo:
        return RepositoryInfo(
            commit="0" * 40,
            commit_date=datetime(2024, 1, 1, tzinfo=UTC),
            token="secret",
            files=self._fetch_files(files),
        )

    def _fetch_file(self, path: str) -> str | None:
        self.fetched.append(path)
        if path == "boom":
            request = httpx.Request("GET", "https://example.invalid/boom")
            raise httpx.HTTPStatusError(
                "500", request=request, response=httpx.Response(500, request=request)
            )
        return self.contents.get(path)

    def cleanup(self, state) -> CleanupResult:
        return CleanupResult(provider="test")


class TestFetchFiles:
    def test_optional_missing_files_are_skipped(self) -> None:
        provider = _DictProvider({"a.txt": "A", "c.txt": "C"})
        files = [FileRequest("a.txt"), FileRequest("b.txt"), FileRequest("c.txt")]

        info = provider.resolve(["o/r"], "main", files)

        assert [f.path for f in info.files] == ["a.txt", "c.txt"]
        assert [f.content for f in info.files] == ["A", "C"]

    def test_missing_required_files_are_aggregated(self) -> None:
        """[a!, b!, c] で c のみ存在する場合、a と b をまとめて1回だけ失敗すること."""
        provider = _DictProvider({"c": "C"})
        files = [FileRequest("a", required=True), FileRequest("b", required=True), FileRequest("c")]

        with pytest.raises(MissingRequiredFilesError) as excinfo:
            provider.resolve(["o/r"], "main", files)

        assert excinfo.value.paths == ["a", "b"]
        assert "'a'" in str(excinfo.value)
        assert "'b'" in str(excinfo.value)
        # 全ファイルを取得してから失敗する
        assert provider.fetched == ["a", "b", "c"]

    def test_transport_errors_propagate(self) -> None:
        provider = _DictProvider({"a": "A"})

        with pytest.raises(httpx.HTTPStatusError):
            provider.resolve(["o/r"], "main", [FileRequest("boom"), FileRequest("a")])

        assert provider.fetched == ["boom"]


class TestRequireEnv:
    def test_missing_credential_names_variable(self) -> None:
        provider = _DictProvider({}, env={})

        with pytest.raises(ConfigurationError, match="PEW_SOMETHING"):
            provider._require_env("PEW_SOMETHING")

    def test_post_state_is_a_copy(self) -> None:
        provider = _DictProvider({})
        provider._save_state("key", "value")

        state = provider.post_state()
        state["key"] = "changed"

        assert provider.post_state() == {"key": "value"}

    def test_secrets_deduplicated_in_order(self) -> None:
        provider = _DictProvider({})
        provider._add_secret("b")
        provider._add_secret("a")
        provider._add_secret("b")
        provider._add_secret("")

        assert provider.secrets() == ["b", "a"]


class TestCreateProvider:
    @pytest.mark.parametrize(
        ("name", "cls"),
        [
            ("github", GithubProvider),
            ("GitLab", GitlabProvider),
            ("BITBUCKET", BitbucketProvider),
            (" perforce ", PerforceProvider),
            (Provider.GITHUB, GithubProvider),
        ],
    )
    def test_case_insensitive(self, name, cls) -> None:
        assert isinstance(create_provider(name, env={}), cls)

    def test_unknown_provider(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown provider 'svn'"):
            parse_provider("svn")
