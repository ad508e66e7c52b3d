"""入力（repositories/ref/provider/files 等）の読み込みと検証.

優先順位（高い順）:
    1. コマンドライン引数
    2. --config で指定したYAMLファイル
    3. GitHub Actions の `INPUT_<NAME>` 環境変数
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from loguru import logger

from buildref.core.exceptions import ConfigurationError
from buildref.providers import parse_provider
from buildref.types import FileRequest, Provider

DATE_SOURCES = ("commit", "now")

_REPOSITORY_SEPARATOR = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class Inputs:
    repositories: list[str]
    ref: str
    provider: Provider
    files: list[FileRequest] = field(default_factory=list)
    file_env: dict[str, str] = field(default_factory=dict)
    run_number: str = ""
    date_source: str = "commit"


def split_repositories(text: str) -> list[str]:
    """改行/カンマ/空白区切りのリポジトリ指定を分割する."""
    return [r for r in _REPOSITORY_SEPARATOR.split(text.strip()) if r]


def parse_file_requests(text: str) -> tuple[list[FileRequest], dict[str, str]]:
    """`path|ENV;path2!|ENV2` 形式のファイル指定を解析する.

    パス末尾の `!` は必須ファイルの印で、取り除いてから記録します。
    2要素に分割できないエントリは警告を出して無視します。

    Args:
        text: `;` 区切りの `path|ENV_VAR` の並び

    Returns:
        (要求ファイルのリスト, パス -> 環境変数名 のマッピング)
    """
    requests: list[FileRequest] = []
    path_to_env: dict[str, str] = {}

    for entry in text.split(";"):
        if not entry.strip():
            continue
        parts = entry.split("|")
        if len(parts) != 2:
            logger.warning(f"Ignoring malformed files entry: '{entry.strip()}'")
            continue

        path = parts[0].strip()
        required = path.endswith("!")
        if required:
            path = path[:-1].strip()
        env_name = parts[1].strip()
        if not path or not env_name:
            logger.warning(f"Ignoring malformed files entry: '{entry.strip()}'")
            continue

        path_to_env[path] = env_name
        requests.append(FileRequest(path=path, required=required))

    return requests, path_to_env


def load_inputs_config(config_yml: Path) -> dict[str, str]:
    """YAMLの入力設定ファイルを読み込む.

    リスト値は repositories なら改行、files なら `;` で連結した文字列にします。

    Args:
        config_yml: 設定ファイルのパス

    Returns:
        入力名 -> 値 の辞書
    """
    with open(config_yml, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {config_yml}")

    values: dict[str, str] = {}
    for key, value in config.items():
        if value is None:
            continue
        if isinstance(value, list):
            sep = ";" if key == "files" else "\n"
            value = sep.join(str(v) for v in value)
        values[str(key)] = str(value)

    logger.info(f"Loaded {len(values)} inputs from {config_yml}")
    return values


def get_input(env: Mapping[str, str], name: str) -> str:
    """GitHub Actions 形式の `INPUT_<NAME>` を読む."""
    return env.get(f"INPUT_{name.replace(' ', '_').upper()}", "").strip()


def collect_inputs(
    overrides: Mapping[str, str | None],
    env: Mapping[str, str],
    config: Mapping[str, str] | None = None,
) -> Inputs:
    """各入力ソースをマージして検証済みの Inputs を作る.

    Args:
        overrides: コマンドライン引数（None は未指定）
        env: 環境変数
        config: YAML設定ファイルの内容

    Raises:
        ConfigurationError: 必須入力の不足、未知のプロバイダ、不正な date-source
    """
    config = config or {}

    def lookup(*names: str) -> str:
        for name in names:
            value = overrides.get(name)
            if value:
                return value.strip()
        for name in names:
            value = config.get(name)
            if value:
                return value.strip()
        for name in names:
            value = get_input(env, name)
            if value:
                return value
        return ""

    repositories = split_repositories(lookup("repositories", "repository"))
    if not repositories:
        raise ConfigurationError("No repository supplied to the action")

    ref = lookup("ref")
    if not ref:
        raise ConfigurationError("No ref supplied to the action")

    provider_name = lookup("provider")
    if not provider_name:
        raise ConfigurationError("No provider supplied to the action")
    provider = parse_provider(provider_name)

    files, file_env = parse_file_requests(lookup("files"))

    run_number = lookup("run-number") or env.get("GITHUB_RUN_NUMBER", "")

    date_source = (lookup("date-source") or "commit").lower()
    if date_source not in DATE_SOURCES:
        raise ConfigurationError(
            f"Unknown date-source '{date_source}' (expected one of: {', '.join(DATE_SOURCES)})"
        )

    return Inputs(
        repositories=repositories,
        ref=ref,
        provider=provider,
        files=files,
        file_env=file_env,
        run_number=run_number,
        date_source=date_source,
    )
