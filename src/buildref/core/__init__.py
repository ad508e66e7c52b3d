"""ビルド名生成のコア処理群.

- ビルド名（テンプレート名 + 短縮名）の決定的生成
- シード文字列 → 単語リストの単語選択
- 例外定義
"""

from .buildname import TEMPLATE, generate, generate_from_description
from .exceptions import (
    BuildRefError,
    ConfigurationError,
    MissingRequiredFilesError,
    PerforceCommandError,
    ResolutionError,
)
from .wordlist import WORDS, select_word

__all__ = [
    "TEMPLATE",
    "generate",
    "generate_from_description",
    "WORDS",
    "select_word",
    "BuildRefError",
    "ConfigurationError",
    "ResolutionError",
    "MissingRequiredFilesError",
    "PerforceCommandError",
]
