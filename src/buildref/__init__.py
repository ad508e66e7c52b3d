"""buildref: refの解決と決定的なビルド名生成.

- ref（ブランチ/タグ/PR/チェンジリスト）→ 不変なコミットIDへの解決
- 解決したコミットでの要求ファイル取得
- コミットと日時からのビルド名生成
"""

from buildref.core import generate, generate_from_description, select_word
from buildref.providers import SourceProvider, create_provider, parse_provider
from buildref.types import (
    BuildDescription,
    BuildName,
    CleanupResult,
    FileRequest,
    Provider,
    RepositoryFile,
    RepositoryInfo,
)

__version__ = "0.1.0"

__all__ = [
    # core
    "generate",
    "generate_from_description",
    "select_word",
    # providers
    "SourceProvider",
    "create_provider",
    "parse_provider",
    # types
    "BuildDescription",
    "BuildName",
    "CleanupResult",
    "FileRequest",
    "Provider",
    "RepositoryFile",
    "RepositoryInfo",
]
