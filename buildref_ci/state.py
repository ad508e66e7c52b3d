"""post処理へ引き継ぐコンテキスト（PostActionContext）の保存と読み込み."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from buildref_ci.actions import WorkflowCommands

STATE_KEY = "context"


@dataclass(frozen=True)
class PostActionContext:
    """メイン処理からpost処理へ渡す唯一のレコード.

    Attributes:
        provider: resolve() を実行したプロバイダ名
        state: プロバイダの post_state()（トークン等を含むため秘匿扱い）
    """

    provider: str
    state: dict[str, str] = field(default_factory=dict, repr=False)

    def to_json(self) -> str:
        return json.dumps({"provider": self.provider, "state": self.state}, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> PostActionContext:
        data = json.loads(text)
        if not isinstance(data, dict) or not isinstance(data.get("provider"), str):
            raise ValueError("Post-action context must be an object with a 'provider' string")
        state = data.get("state") or {}
        return cls(provider=data["provider"], state={str(k): str(v) for k, v in state.items()})


def save_context(
    context: PostActionContext,
    commands: WorkflowCommands,
    state_file: Path | None = None,
) -> None:
    """コンテキストを保存する.

    state_file 指定時はそのファイルに（所有者のみ読み書き可で）書き込み、
    それ以外は CI の state（GITHUB_STATE）に保存します。

    Args:
        context: 保存するコンテキスト
        commands: ワークフローコマンド
        state_file: ローカル実行用の保存先
    """
    if state_file is not None:
        state_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(state_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(context.to_json())
        logger.info(f"Post-action context written to {state_file}")
        return

    if not commands.save_state(STATE_KEY, context.to_json()):
        logger.warning("GITHUB_STATE is not set; post-action cleanup will be skipped")


def load_context(
    commands: WorkflowCommands,
    state_file: Path | None = None,
) -> PostActionContext | None:
    """保存済みのコンテキストを読み込む.

    state_file は読み込み後すぐに削除します（秘匿値をディスクに残さない）。

    Returns:
        PostActionContext。保存されていなければ None
    """
    if state_file is not None:
        if not state_file.exists():
            logger.warning(f"Post-action context not found: {state_file}")
            return None
        try:
            text = state_file.read_text(encoding="utf-8")
        finally:
            state_file.unlink(missing_ok=True)
    else:
        text = commands.get_state(STATE_KEY)

    if not text:
        return None

    context = PostActionContext.from_json(text)
    logger.info(f"Loaded post-action context for provider '{context.provider}'")
    return context
