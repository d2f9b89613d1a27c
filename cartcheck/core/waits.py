"""
待機戦略 — 条件成立までの有界ポーリング

ページ状態は全てドライバ操作に対して非同期に変化するため、
操作直後の単発読み取りは競合する。全ての待機をこのモジュールの
wait_for() に集約し、上位の検証処理が同一のリトライ規則を継承する。

主な機能:
  - wait_for: 述語が真になるまで待機（reverse=True で偽になるまで待機）
  - wait_for_absence: wait_for の reverse 版
  - wait_for_visible / wait_for_hidden / wait_for_enabled: 要素状態の待機
  - wait_for_url: 現在 URL の変化待機
  - wait_for_value_change: 読み取り値が旧値から変化するまで待機
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from ..errors import WaitTimeoutError

if TYPE_CHECKING:
    from .locators import ElementProvider, Locator

logger = logging.getLogger(__name__)

# デフォルトのタイムアウト・ポーリング間隔（ミリ秒）
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_INTERVAL_MS = 100

Predicate = Callable[[], Union[Any, Awaitable[Any]]]


# ---------------------------------------------------------------------------
# 待機条件
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WaitCondition:
    """1回の待機呼び出しで使用する待機条件。

    wait_for() の呼び出しごとに生成され、成立またはタイムアウトで破棄される。

    Attributes:
        predicate: 観測対象の述語（同期関数またはコルーチン関数）
        timeout_ms: タイムアウト（ミリ秒）
        interval_ms: ポーリング間隔（ミリ秒）
        reverse: True の場合、述語が偽になるまで待機する
        description: ログ・エラーメッセージ用の説明
    """

    predicate: Predicate
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    interval_ms: int = DEFAULT_INTERVAL_MS
    reverse: bool = False
    description: str = ""

    def is_settled(self, value: Any) -> bool:
        """観測値が待機完了条件を満たすかを返す。"""
        return not value if self.reverse else bool(value)


# ---------------------------------------------------------------------------
# 汎用ポーリング
# ---------------------------------------------------------------------------

async def _evaluate(predicate: Predicate) -> Any:
    """述語を評価する。コルーチンを返した場合は await する。"""
    value = predicate()
    if inspect.isawaitable(value):
        value = await value
    return value


async def poll(condition: WaitCondition) -> Any:
    """WaitCondition に従って述語をポーリングする。

    述語を評価し、完了条件を満たせば観測値を返す（reverse 時は None）。
    満たさなければ min(interval, 残り時間) だけ待機して再評価する。
    述語が送出した例外はそのまま伝播させる。

    Args:
        condition: 待機条件

    Returns:
        完了条件を満たした時点の観測値（reverse 時は None）

    Raises:
        WaitTimeoutError: タイムアウト時間内に条件が成立しなかった場合
    """
    start = time.perf_counter()
    deadline_sec = condition.timeout_ms / 1000.0
    interval_sec = condition.interval_ms / 1000.0

    while True:
        value = await _evaluate(condition.predicate)
        elapsed = time.perf_counter() - start

        if condition.is_settled(value):
            logger.debug(
                "待機完了: %s（%.0fms 経過）", condition.description or "条件", elapsed * 1000,
            )
            return None if condition.reverse else value

        if elapsed >= deadline_sec:
            raise WaitTimeoutError(
                condition.description,
                condition.timeout_ms,
                elapsed * 1000,
                last_value=value,
            )

        await asyncio.sleep(min(interval_sec, deadline_sec - elapsed))


async def wait_for(
    predicate: Predicate,
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
    *,
    reverse: bool = False,
    description: str = "",
) -> Any:
    """述語が真（reverse=True なら偽）になるまで待機する。

    Args:
        predicate: 観測対象の述語。ブロッキング読み取りを含んでよい
        timeout: タイムアウト（ミリ秒）
        interval: ポーリング間隔（ミリ秒）
        reverse: True の場合、述語が偽になるまで待機する
        description: エラーメッセージ用の説明

    Returns:
        真になった時点の述語の戻り値（reverse 時は None）

    Raises:
        WaitTimeoutError: タイムアウト時間内に条件が成立しなかった場合
    """
    if timeout < 0 or interval <= 0:
        raise ValueError(f"timeout は 0 以上、interval は正の値を指定してください: {timeout}, {interval}")

    condition = WaitCondition(
        predicate=predicate,
        timeout_ms=timeout,
        interval_ms=interval,
        reverse=reverse,
        description=description,
    )
    return await poll(condition)


async def wait_for_absence(
    predicate: Predicate,
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
    *,
    description: str = "",
) -> None:
    """述語が偽になるまで待機する（wait_for の reverse 版）。

    「まだ描画されていない」ではなく「意図的に存在しない」ことを
    確認する場合に使用する。
    """
    await wait_for(
        predicate, timeout, interval, reverse=True, description=description,
    )


# ---------------------------------------------------------------------------
# 要素状態の待機
# ---------------------------------------------------------------------------

async def wait_for_visible(
    elements: ElementProvider,
    locator: Locator,
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
) -> None:
    """要素が可視になるまで待機する。0 件ヒットは未描画として待機を継続する。"""
    await wait_for(
        lambda: elements.is_visible(locator),
        timeout, interval,
        description=f"{locator} の表示",
    )


async def wait_for_hidden(
    elements: ElementProvider,
    locator: Locator,
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
) -> None:
    """要素が非表示（または DOM から除去）になるまで待機する。"""
    await wait_for_absence(
        lambda: elements.is_visible(locator),
        timeout, interval,
        description=f"{locator} の非表示",
    )


async def wait_for_enabled(
    elements: ElementProvider,
    locator: Locator,
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
) -> None:
    """要素が可視かつ有効（操作可能）になるまで待機する。"""

    async def _interactable() -> bool:
        return await elements.is_visible(locator) and await elements.is_enabled(locator)

    await wait_for(
        _interactable, timeout, interval,
        description=f"{locator} の操作可能化",
    )


async def wait_for_url(
    elements: ElementProvider,
    expected: Union[str, Callable[[str], bool]],
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
) -> str:
    """現在 URL が条件を満たすまで待機する。

    Args:
        elements: ElementProvider
        expected: URL に含まれるべき部分文字列、または URL を受け取る判定関数
        timeout: タイムアウト（ミリ秒）
        interval: ポーリング間隔（ミリ秒）

    Returns:
        条件を満たした URL
    """
    if isinstance(expected, str):
        matcher: Callable[[str], bool] = lambda url: expected in url
        description = f"URL に '{expected}' を含む"
    else:
        matcher = expected
        description = "URL 条件"

    async def _current_if_matched() -> str | None:
        url = await elements.current_url()
        return url if matcher(url) else None

    return await wait_for(_current_if_matched, timeout, interval, description=description)


async def wait_for_value_change(
    read: Callable[[], Awaitable[Any]],
    old_value: Any,
    timeout: int = DEFAULT_TIMEOUT_MS,
    interval: int = DEFAULT_INTERVAL_MS,
    *,
    description: str = "値の変化",
) -> Any:
    """read() の戻り値が old_value から変化するまで待機し、新しい値を返す。"""
    latest: list[Any] = [old_value]

    async def _changed() -> bool:
        latest[0] = await read()
        return latest[0] != old_value

    await wait_for(_changed, timeout, interval, description=description)
    return latest[0]
