"""buildref exceptions.

リゾルバ/ビルド名生成で使用するカスタム例外クラスを定義します。
HTTP通信エラー（httpx.HTTPStatusError等）はラップせずにそのまま伝播させます。
"""

from __future__ import annotations


class BuildRefError(Exception):
    """buildref全体の基底例外."""


class ConfigurationError(BuildRefError):
    """入力や認証情報の不足、未知のプロバイダ指定など設定不備."""


class ResolutionError(BuildRefError):
    """refが見つからない/曖昧、リポジトリ指定が不正など解決失敗."""


class MissingRequiredFilesError(ResolutionError):
    """必須ファイルが取得後に1件以上欠けている.

    全ファイルの取得が終わってから1回だけ送出され、欠けている必須ファイルを
    要求順にすべて列挙します。

    Attributes:
        paths: 欠けている必須ファイルのパス（要求順）
    """

    def __init__(self, paths: list[str]) -> None:
        self.paths = list(paths)
        joined = ", ".join(f"'{p}'" for p in self.paths)
        super().__init__(f"Missing required files: {joined}")


class PerforceCommandError(BuildRefError):
    """p4 コマンドが非0で終了した.

    Attributes:
        args_: 実行した p4 の引数（パスワードは含まない）
        returncode: 終了コード
    """

    def __init__(self, args_: list[str], returncode: int, stderr: str = "") -> None:
        self.args_ = list(args_)
        self.returncode = returncode
        self.stderr = stderr
        message = f"p4 {' '.join(self.args_)} returned error {returncode}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
