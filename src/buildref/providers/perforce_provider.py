"""Perforce プロバイダ.

`p4` コマンドラインを subprocess で実行してチェンジリストを解決します。
リポジトリ指定は P4PORT（例: `ssl:perforce.example.com:1666`）です。

必要な環境変数:
    PEW_P4USER: ユーザー名
    PEW_P4PASS: パスワード（標準入力でのみ p4 に渡し、ディスクには書かない）
    PEW_P4_CLIENT_TEMPLATE: View を参照するテンプレートワークスペース名
    PEW_P4PORT_FINGERPRINT: ssl: サーバーの場合のみ必須
    PEW_P4_EXECUTABLE: p4 実行ファイル（省略時は "p4"）
"""

from __future__ import annotations

import json
import re
import subprocess
from collections.abc import Callable, Mapping

from loguru import logger

from buildref.core.exceptions import (
    ConfigurationError,
    PerforceCommandError,
    ResolutionError,
)
from buildref.providers.base_provider import SourceProvider
from buildref.types import CleanupResult, FileRequest, Provider, RepositoryInfo
from buildref.utils import from_epoch

HEAD_REF = "#head"

_CHANGELIST_REF = re.compile(r"^@(\d+)$")

_STATE_TRUST_PORT = "p4_trust_port"
_STATE_LOGIN_PORT = "p4_login_port"
_STATE_LOGIN_USER = "p4_login_user"

Runner = Callable[..., subprocess.CompletedProcess]


def validate_ref(ref: str) -> bool:
    """`#head` または `@<changelist>` のみ受け付ける."""
    return ref == HEAD_REF or _CHANGELIST_REF.match(ref) is not None


def view_depot_paths(client_spec: dict, ref: str) -> list[str]:
    """クライアント仕様の View* から ref 付きのデポパスを作る.

    除外マッピング（先頭が `-`）は対象外にします。

    Raises:
        ResolutionError: View が `<depot> <client>` の2要素でない場合
    """
    paths: list[str] = []
    for key, value in client_spec.items():
        if not key.startswith("View"):
            continue
        view = value.split(" ")
        if len(view) != 2:
            raise ResolutionError(f"Malformed client view '{value}'")
        depot = view[0]
        if depot.startswith("-"):
            continue
        paths.append(depot.lstrip("+") + ref)
    return paths


def latest_change(changes: list[dict]) -> dict | None:
    """チェンジリスト番号が最大のものを返す."""
    recent: dict | None = None
    for change in changes:
        if "change" not in change:
            continue
        if recent is None or int(change["change"]) > int(recent["change"]):
            recent = change
    return recent


class PerforceProvider(SourceProvider):
    provider = Provider.PERFORCE
    display_name = "Perforce"

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        runner: Runner = subprocess.run,
    ) -> None:
        super().__init__(env)
        self._runner = runner
        self._executable = self._env.get("PEW_P4_EXECUTABLE") or "p4"

    def _run_p4(
        self,
        args: list[str],
        p4env: Mapping[str, str],
        stdin: str | None = None,
    ) -> str:
        # 資格情報（PEW_*）は子プロセスに渡さない
        env = {k: v for k, v in self._env.items() if not k.startswith("PEW_")}
        env.update(p4env)
        result = self._runner(
            [self._executable, *args],
            env=env,
            input=stdin,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise PerforceCommandError(args, result.returncode, result.stderr or "")
        return result.stdout or ""

    def _run_p4_json(self, args: list[str], p4env: Mapping[str, str]) -> list[dict]:
        output = self._run_p4(["-Mj", "-Ztag", *args], p4env)
        records = [json.loads(line) for line in output.splitlines() if line.strip()]
        for record in records:
            if record.get("code") == "error":
                raise ResolutionError(str(record.get("data", "")).strip() or f"p4 {args[0]} failed")
        return records

    def _trust(self, port: str) -> None:
        fingerprint = self._require_env("PEW_P4PORT_FINGERPRINT", hint="required for ssl: servers")
        logger.info("Set P4 trust fingerprint")
        self._run_p4(["trust", "-i", fingerprint], {"P4PORT": port})
        self._save_state(_STATE_TRUST_PORT, port)

    def _login(self, port: str, user: str, password: str) -> None:
        logger.info("Login to P4 server")
        self._run_p4(["login"], {"P4PORT": port, "P4USER": user}, stdin=f"{password}\n")
        self._save_state(_STATE_LOGIN_PORT, port)
        self._save_state(_STATE_LOGIN_USER, user)

    def _describe(self, changelist: str, p4env: Mapping[str, str]) -> dict:
        records = self._run_p4_json(["describe", "-s", changelist], p4env)
        if not records or "time" not in records[0]:
            raise ResolutionError(f"Failed to find changelist '{changelist}'")
        return records[0]

    def _head_change(self, template: str, p4env: Mapping[str, str]) -> dict:
        logger.info(f"Get template workspace '{template}'")
        client_specs = self._run_p4_json(["client", "-o", template], p4env)
        if not client_specs:
            raise ResolutionError(f"Failed to read client template '{template}'")

        paths = view_depot_paths(client_specs[0], HEAD_REF)
        if not paths:
            raise ResolutionError(f"Client template '{template}' has no view mappings")

        logger.info("Get changelist")
        changes = self._run_p4_json(["changes", "-m1", "-t", *paths], p4env)
        recent = latest_change(changes)
        if recent is None:
            raise ResolutionError("Failed to find a suitable changelist")
        return recent

    def resolve(
        self,
        repositories: list[str],
        ref: str,
        files: list[FileRequest],
    ) -> RepositoryInfo:
        if len(repositories) != 1:
            raise ConfigurationError("Perforce provider only supports a single repository")
        if files:
            raise ConfigurationError("Perforce provider does not support fetching files")
        if not validate_ref(ref):
            raise ConfigurationError(f"Unsupported perforce ref '{ref}'")

        user = self._require_env("PEW_P4USER")
        password = self._require_env("PEW_P4PASS")
        self._add_secret(password)
        template = self._require_env("PEW_P4_CLIENT_TEMPLATE")

        port = repositories[0]
        if port.startswith("ssl:"):
            self._trust(port)

        p4env = {"P4PORT": port, "P4USER": user}
        self._login(port, user, password)

        match = _CHANGELIST_REF.match(ref)
        if match:
            changelist = match.group(1)
            change = self._describe(changelist, p4env)
        else:
            change = self._head_change(template, p4env)
            changelist = str(change["change"])

        commit = f"@{changelist}"
        logger.info(f"Resolved {ref} to changelist {commit}")
        return RepositoryInfo(
            commit=commit,
            commit_date=from_epoch(change["time"]),
            token="p4ticket",
            files=[],
        )

    def _fetch_file(self, path: str) -> str | None:
        raise ConfigurationError("Perforce provider does not support fetching files")

    def cleanup(self, state: Mapping[str, str]) -> CleanupResult:
        actions: list[str] = []
        warnings: list[str] = []

        login_port = state.get(_STATE_LOGIN_PORT)
        login_user = state.get(_STATE_LOGIN_USER)
        if login_port and login_user:
            try:
                self._run_p4(["logout"], {"P4PORT": login_port, "P4USER": login_user})
                actions.append("logged out")
            except (PerforceCommandError, OSError) as e:
                warnings.append(f"Failed to logout from P4: {e}")

        trust_port = state.get(_STATE_TRUST_PORT)
        if trust_port:
            try:
                self._run_p4(["trust", "-d"], {"P4PORT": trust_port})
                actions.append("revoked trust")
            except (PerforceCommandError, OSError) as e:
                warnings.append(f"Failed to revoke P4 trust: {e}")

        return CleanupResult(provider=self.provider.value, actions=actions, warnings=warnings)
