"""GitLab プロバイダ.

必要な環境変数:
    PEW_GITLAB_TOKEN: パーソナル/プロジェクトアクセストークン
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from urllib.parse import quote, urlsplit

import httpx
from loguru import logger

from buildref.core.exceptions import ResolutionError
from buildref.providers.base_provider import DEFAULT_TIMEOUT, SourceProvider
from buildref.types import CleanupResult, FileRequest, Provider, RepositoryInfo
from buildref.utils import parse_timestamp


def split_project_url(repository: str) -> tuple[str, str]:
    """`https://host/group/project` を (origin, "group/project") に分割する."""
    parts = urlsplit(repository)
    project = parts.path.strip("/")
    if not parts.scheme or not parts.netloc or not project:
        raise ResolutionError(f"Malformed gitlab repository '{repository}'")
    if project.endswith(".git"):
        project = project[: -len(".git")]
    return f"{parts.scheme}://{parts.netloc}", project


class GitlabProvider(SourceProvider):
    provider = Provider.GITLAB
    display_name = "Gitlab"

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(env)
        self._transport = transport
        self._timeout = timeout
        self._client: httpx.Client | None = None
        self._project_path = ""
        self._commit = ""

    def resolve(
        self,
        repositories: list[str],
        ref: str,
        files: list[FileRequest],
    ) -> RepositoryInfo:
        token = self._require_env("PEW_GITLAB_TOKEN")
        self._add_secret(token)

        if len(repositories) != 1:
            raise ResolutionError("Gitlab provider only supports a single repository")
        origin, project = split_project_url(repositories[0])
        self._project_path = f"/projects/{quote(project, safe='')}"

        with httpx.Client(
            base_url=f"{origin}/api/v4",
            headers={"PRIVATE-TOKEN": token},
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            self._client = client
            try:
                response = client.get(
                    f"{self._project_path}/repository/commits",
                    params={"ref_name": ref, "per_page": 1, "page": 1},
                )
                if response.status_code == 404:
                    raise ResolutionError(f"Failed to find ref '{ref}'")
                response.raise_for_status()
                commits = response.json()
                if len(commits) != 1:
                    raise ResolutionError(f"Failed to find ref '{ref}'")

                self._commit = commits[0]["id"]
                commit_date = parse_timestamp(commits[0]["committed_date"])
                logger.info(f"Resolved {project}@{ref} to {self._commit}")
                repo_files = self._fetch_files(files)
            finally:
                self._client = None

        return RepositoryInfo(
            commit=self._commit,
            commit_date=commit_date,
            token=token,
            files=repo_files,
        )

    def _fetch_file(self, path: str) -> str | None:
        assert self._client is not None
        response = self._client.get(
            f"{self._project_path}/repository/files/{quote(path.lstrip('/'), safe='')}",
            params={"ref": self._commit},
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return base64.b64decode(response.json()["content"]).decode("utf-8", errors="replace")

    def cleanup(self, state: Mapping[str, str]) -> CleanupResult:
        # TODO: ワークフロー単位の短命トークンへ委譲できたらここで破棄する
        logger.debug("Gitlab token is caller-owned, nothing to revoke")
        return CleanupResult(provider=self.provider.value)
