"""
例外定義 — cartcheck 全体で使用するエラー階層

待機・操作・検証・事前準備の各段階で発生する失敗を型で区別する。
Runner はこれらを StepResult.error_type として記録し、
レポート上で失敗の種類を判別できるようにする。

階層:
  CartcheckError
    ├─ WaitTimeoutError   (TimeoutError)   待機条件がタイムアウト内に成立しなかった
    ├─ ActionError                         操作（クリック・遷移等）が完了できなかった
    ├─ StepAssertionError (AssertionError) 観測値が期待値と一致しなかった
    ├─ SetupError                          シナリオ前の API / DB 準備に失敗した
    ├─ UndefinedStepError                  ステップ文に一致する定義がない
    ├─ AmbiguousStepError                  ステップ文に複数の定義が一致した
    └─ FeatureParseError  (ValueError)     .feature ファイルの構文エラー
"""

from __future__ import annotations

from typing import Any, Optional


class CartcheckError(Exception):
    """cartcheck の全例外の基底クラス。"""


class WaitTimeoutError(CartcheckError, TimeoutError):
    """待機条件がタイムアウト内に成立しなかった場合のエラー。

    Attributes:
        description: 待機対象の説明
        timeout_ms: タイムアウト（ミリ秒）
        elapsed_ms: 実際の経過時間（ミリ秒）
        last_value: 最後に観測した述語の戻り値
    """

    def __init__(
        self,
        description: str,
        timeout_ms: int,
        elapsed_ms: float,
        last_value: Any = None,
    ) -> None:
        self.description = description
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        self.last_value = last_value
        super().__init__(
            f"{description or '条件'} が {timeout_ms}ms 以内に成立しませんでした"
            f"（経過 {elapsed_ms:.0f}ms, 最終観測値: {last_value!r}）"
        )


class ActionError(CartcheckError):
    """ブラウザ操作が完了できなかった場合のエラー。

    Attributes:
        action: 試行した操作名
        target: 操作対象の説明
        cause: 元になったドライバ側の例外
    """

    def __init__(self, action: str, target: str, cause: Optional[BaseException] = None) -> None:
        self.action = action
        self.target = target
        self.cause = cause
        message = f"操作 '{action}' に失敗しました（対象: {target}）"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class StepAssertionError(CartcheckError, AssertionError):
    """観測した状態が期待値と異なる場合のエラー。"""

    def __init__(self, message: str, expected: Any = None, actual: Any = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"{message}。期待値: {expected!r}, 実際: {actual!r}")


class SetupError(CartcheckError):
    """シナリオ前の HTTP / DB 準備処理が失敗した場合のエラー。"""


class UndefinedStepError(CartcheckError):
    """ステップ文に一致するステップ定義が存在しない場合のエラー。"""


class AmbiguousStepError(CartcheckError):
    """ステップ文に複数のステップ定義が一致した場合のエラー。"""


class FeatureParseError(CartcheckError, ValueError):
    """.feature ファイルの読み込み・構文解析に失敗した場合のエラー。

    Attributes:
        line: エラー箇所の行番号（取得できた場合）
    """

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.line = line
        super().__init__(message)
