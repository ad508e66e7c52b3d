"""buildref_ci: CI統合レイヤ.

入力の解析、refの解決とビルド名出力、post処理（認証情報の破棄）を提供する。
"""

from buildref_ci.actions import WorkflowCommands
from buildref_ci.inputs import (
    Inputs,
    collect_inputs,
    load_inputs_config,
    parse_file_requests,
    split_repositories,
)
from buildref_ci.state import PostActionContext, load_context, save_context

__version__ = "0.1.0"

__all__ = [
    # actions
    "WorkflowCommands",
    # inputs
    "Inputs",
    "collect_inputs",
    "load_inputs_config",
    "parse_file_requests",
    "split_repositories",
    # state
    "PostActionContext",
    "save_context",
    "load_context",
]
