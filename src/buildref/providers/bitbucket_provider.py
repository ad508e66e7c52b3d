"""Bitbucket Cloud プロバイダ.

必要な環境変数:
    PEW_BITBUCKET_USERNAME: ユーザー名
    PEW_BITBUCKET_PASSWORD: アプリパスワード
"""

from __future__ import annotations

import base64
import re
from collections.abc import Mapping
from urllib.parse import quote, urlsplit

import httpx
from loguru import logger

from buildref.core.exceptions import ResolutionError
from buildref.providers.base_provider import DEFAULT_TIMEOUT, SourceProvider
from buildref.types import CleanupResult, FileRequest, Provider, RepositoryInfo
from buildref.utils import parse_timestamp

DEFAULT_API_URL = "https://api.bitbucket.org/2.0"

_COMMIT_HASH = re.compile(r"^[0-9a-fA-F]{7,40}$")


def split_workspace_url(repository: str) -> tuple[str, str]:
    """`https://bitbucket.org/<workspace>/<project>` を (workspace, project) に分割する."""
    parts = urlsplit(repository).path.split("/")
    if len(parts) != 3 or not parts[1] or not parts[2]:
        raise ResolutionError(f"Malformed bitbucket repository '{repository}'")
    project = parts[2]
    if project.endswith(".git"):
        project = project[: -len(".git")]
    return parts[1], project


def basic_auth(username: str, password: str) -> str:
    encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return f"Basic {encoded}"


class BitbucketProvider(SourceProvider):
    provider = Provider.BITBUCKET
    display_name = "Bitbucket"

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(env)
        self._transport = transport
        self._timeout = timeout
        self._api_url = self._env.get("PEW_BITBUCKET_API_URL") or DEFAULT_API_URL
        self._client: httpx.Client | None = None
        self._repo_path = ""
        self._commit = ""

    def _lookup_ref(self, client: httpx.Client, ref: str) -> dict | None:
        response = client.get(f"{self._repo_path}/refs", params={"q": f'name="{ref}"'})
        if response.is_error:
            try:
                error = response.json()
            except ValueError:
                error = None
            if isinstance(error, dict) and error.get("type") == "error":
                raise ResolutionError(error.get("error", {}).get("message", f"Failed to find ref '{ref}'"))
            response.raise_for_status()

        data = response.json()
        values = data.get("values") or []
        if len(values) > 1:
            raise ResolutionError(f"Ambiguous ref '{ref}' matched {len(values)} refs")
        if not values:
            return None
        return values[0]["target"]

    def _lookup_commit(self, client: httpx.Client, ref: str) -> dict | None:
        if not _COMMIT_HASH.match(ref):
            return None
        response = client.get(f"{self._repo_path}/commit/{ref}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    def resolve(
        self,
        repositories: list[str],
        ref: str,
        files: list[FileRequest],
    ) -> RepositoryInfo:
        username = self._require_env("PEW_BITBUCKET_USERNAME")
        password = self._require_env("PEW_BITBUCKET_PASSWORD")
        auth_header = basic_auth(username, password)
        self._add_secret(password)
        self._add_secret(auth_header)

        if len(repositories) != 1:
            raise ResolutionError("Bitbucket provider only supports a single repository")
        workspace, project = split_workspace_url(repositories[0])
        self._repo_path = f"/repositories/{workspace}/{project}"

        with httpx.Client(
            base_url=self._api_url,
            headers={"Authorization": auth_header, "Accept": "application/json"},
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            self._client = client
            try:
                target = self._lookup_ref(client, ref)
                if target is None:
                    # ブランチ/タグ名に一致しなければコミットハッシュとして扱う
                    logger.info(f"No ref named '{ref}', trying it as a commit hash")
                    target = self._lookup_commit(client, ref)
                if target is None:
                    raise ResolutionError(f"Failed to find ref '{ref}'")

                self._commit = target["hash"]
                commit_date = parse_timestamp(target["date"])
                logger.info(f"Resolved {workspace}/{project}@{ref} to {self._commit}")
                repo_files = self._fetch_files(files)
            finally:
                self._client = None

        return RepositoryInfo(
            commit=self._commit,
            commit_date=commit_date,
            token=auth_header,
            files=repo_files,
        )

    def _fetch_file(self, path: str) -> str | None:
        assert self._client is not None
        response = self._client.get(
            f"{self._repo_path}/src/{self._commit}/{quote(path.lstrip('/'))}"
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.text

    def cleanup(self, state: Mapping[str, str]) -> CleanupResult:
        # TODO: ワークフロー単位の短命トークンへ委譲できたらここで破棄する
        logger.debug("Bitbucket credentials are caller-owned, nothing to revoke")
        return CleanupResult(provider=self.provider.value)
