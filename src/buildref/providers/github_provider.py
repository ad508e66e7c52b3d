"""GitHub プロバイダ.

GitHub App として認証し、リポジトリ群に限定した読み取り専用の
インストールトークンを発行してから ref を解決します。

必要な環境変数:
    PEW_GITHUB_APPID: GitHub App のID
    PEW_GITHUB_KEY: GitHub App の秘密鍵（PEM）
"""

from __future__ import annotations

import base64
import re
import time
from collections.abc import Mapping

import httpx
import jwt
from loguru import logger

from buildref.core.exceptions import ResolutionError
from buildref.providers.base_provider import DEFAULT_TIMEOUT, SourceProvider
from buildref.types import CleanupResult, FileRequest, Provider, RepositoryInfo
from buildref.utils import parse_timestamp

DEFAULT_API_URL = "https://api.github.com"

_PULL_REQUEST_REF = re.compile(r"^(\d+)/merge$")

_STATE_TOKEN = "github_token"


def split_repository(repository: str) -> tuple[str, str]:
    """`owner/name` 形式を (owner, name) に分割する."""
    parts = repository.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ResolutionError(f"Invalid repository format for '{repository}'")
    return parts[0], parts[1]


def rewrite_pull_request_ref(ref: str, event_name: str | None) -> str:
    """pull_request イベントの `N/merge` を `refs/pull/N/head` に書き換える."""
    match = _PULL_REQUEST_REF.match(ref)
    if match and event_name == "pull_request":
        return f"refs/pull/{match.group(1)}/head"
    return ref


class GithubProvider(SourceProvider):
    provider = Provider.GITHUB
    display_name = "GitHub"

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(env)
        self._transport = transport
        self._timeout = timeout
        self._api_url = self._env.get("GITHUB_API_URL") or DEFAULT_API_URL
        self._client: httpx.Client | None = None
        self._owner = ""
        self._repo = ""
        self._commit = ""

    def _open_client(self, token: str, scheme: str = "token") -> httpx.Client:
        return httpx.Client(
            base_url=self._api_url,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"{scheme} {token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    def _app_jwt(self, app_id: str, private_key: str) -> str:
        now = int(time.time())
        # 時刻ずれ対策で発行時刻を60秒戻す。有効期限は上限の10分未満
        payload = {"iat": now - 60, "exp": now + 540, "iss": app_id}
        return jwt.encode(payload, private_key, algorithm="RS256")

    def _find_installation_id(self, app_client: httpx.Client, owner: str) -> int:
        url: str | None = "/app/installations"
        params: dict[str, int] | None = {"per_page": 100}
        while url:
            response = app_client.get(url, params=params)
            response.raise_for_status()
            for installation in response.json():
                login = (installation.get("account") or {}).get("login") or ""
                if login.lower() == owner.lower():
                    return installation["id"]
            url = response.links.get("next", {}).get("url")
            params = None
        raise ResolutionError(f"Failed to find installation id for owner '{owner}'")

    def _repository_names(self, repositories: list[str], owner: str) -> list[str]:
        names: list[str] = []
        for repository in repositories:
            repo_owner, repo_name = split_repository(repository)
            if repo_owner != owner:
                raise ResolutionError(
                    f"Repository '{repository}' is not owned by the same owner as '{repositories[0]}'"
                )
            names.append(repo_name)
        return names

    def _create_access_token(self, app_id: str, private_key: str, repositories: list[str]) -> str:
        owner = self._owner
        app_token = self._app_jwt(app_id, private_key)
        with self._open_client(app_token, scheme="Bearer") as app_client:
            response = app_client.get("/app")
            response.raise_for_status()
            logger.info(f"Authenticated as application '{response.json().get('name')}'")

            logger.info(f"Determining installation id for repository '{repositories[0]}'")
            installation_id = self._find_installation_id(app_client, owner)

            response = app_client.post(
                f"/app/installations/{installation_id}/access_tokens",
                json={
                    "repositories": self._repository_names(repositories, owner),
                    "permissions": {"contents": "read"},
                },
            )
            response.raise_for_status()
            data = response.json()

        granted = [r["full_name"] for r in data.get("repositories") or [{"full_name": "all"}]]
        logger.info(f"Access token granted for {', '.join(granted)}")
        return data["token"]

    def resolve(
        self,
        repositories: list[str],
        ref: str,
        files: list[FileRequest],
    ) -> RepositoryInfo:
        app_id = self._require_env("PEW_GITHUB_APPID")
        private_key = self._require_env("PEW_GITHUB_KEY")

        if not repositories:
            raise ResolutionError("No repositories supplied")
        logger.info(f"Received repositories: {', '.join(repositories)}")

        # 先頭のリポジトリで所有者を決める。他のリポジトリも同じ所有者であること
        self._owner, self._repo = split_repository(repositories[0])

        token = self._create_access_token(app_id, private_key, repositories)
        self._add_secret(token)
        self._save_state(_STATE_TOKEN, token)

        commit_ref = rewrite_pull_request_ref(ref, self._env.get("GITHUB_EVENT_NAME"))

        with self._open_client(token) as client:
            self._client = client
            try:
                response = client.get(f"/repos/{self._owner}/{self._repo}/commits/{commit_ref}")
                if response.status_code in (404, 422):
                    raise ResolutionError(f"Failed to find ref '{ref}'")
                response.raise_for_status()
                data = response.json()

                self._commit = data["sha"]
                commit_date = parse_timestamp(data["commit"]["committer"]["date"])
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
            f"/repos/{self._owner}/{self._repo}/contents/{path.lstrip('/')}",
            params={"ref": self._commit},
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ResolutionError(f"'{path}' is not a file")
        if data.get("encoding") == "base64":
            return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        return data.get("content", "")

    def cleanup(self, state: Mapping[str, str]) -> CleanupResult:
        token = state.get(_STATE_TOKEN)
        if not token:
            return CleanupResult(provider=self.provider.value)

        try:
            with self._open_client(token) as client:
                response = client.delete("/installation/token")
                response.raise_for_status()
        except httpx.HTTPError as e:
            return CleanupResult(
                provider=self.provider.value,
                warnings=[f"Failed to revoke GitHub access token: {e}"],
            )

        logger.info("Revoked GitHub access token")
        return CleanupResult(provider=self.provider.value, actions=["revoked access token"])
