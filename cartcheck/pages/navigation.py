"""
NavigationHelper — ページモデル共通のナビゲーション・待機機能

各ページモデルは基底クラスを継承せず、このヘルパーを保持して利用する。
ページ固有の処理とナビゲーションの既定動作が密結合にならないようにするため。

主な機能:
  - open(): パスへ遷移し、準備完了ロケータの表示まで待機
  - action(): 操作の計時・ActionEvent 記録・ActionError への変換
  - wait_for_element / wait_for_absence / wait_until_interactable / wait_for_url
  - click / select: 操作可能化を待ってから実行
  - is_text_visible / assert_text_visible: ページ内テキストの確認
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Union

from ..config import Timeouts
from ..core import waits
from ..core.events import ActionEvent, EventLog
from ..core.locators import ElementProvider, Locator
from ..errors import ActionError, CartcheckError, StepAssertionError, WaitTimeoutError


class NavigationHelper:
    """ページモデルに合成されるナビゲーション・待機ヘルパー。

    Attributes:
        elements: ドライバの ElementProvider
        events: 操作イベントの記録先
        timeouts: タイムアウト設定
    """

    def __init__(
        self,
        elements: ElementProvider,
        events: Optional[EventLog] = None,
        timeouts: Optional[Timeouts] = None,
    ) -> None:
        self.elements = elements
        self.events = events if events is not None else EventLog()
        self.timeouts = timeouts if timeouts is not None else Timeouts()

    # -------------------------------------------------------------------
    # 操作の記録
    # -------------------------------------------------------------------

    @asynccontextmanager
    async def action(self, name: str, target: object) -> AsyncIterator[None]:
        """操作ブロックを計時し、結果を ActionEvent として記録する。

        ブロック内で発生した型付きエラー（CartcheckError）はそのまま伝播し、
        それ以外のドライバ例外は ActionError でラップする。

        Args:
            name: 操作名
            target: 操作対象（Locator または説明文字列）
        """
        start = time.perf_counter()
        target_desc = str(target)
        try:
            yield
        except CartcheckError as exc:
            self._record(name, target_desc, "failed", start, str(exc))
            raise
        except Exception as exc:
            self._record(name, target_desc, "failed", start, str(exc))
            raise ActionError(name, target_desc, exc) from exc
        self._record(name, target_desc, "ok", start)

    def _record(
        self, name: str, target: str, outcome: str, start: float, detail: Optional[str] = None,
    ) -> None:
        self.events.record(ActionEvent(
            action=name,
            target=target,
            outcome=outcome,  # type: ignore[arg-type]
            duration_ms=(time.perf_counter() - start) * 1000,
            detail=detail,
        ))

    # -------------------------------------------------------------------
    # ナビゲーション
    # -------------------------------------------------------------------

    async def open(self, path: str = "", ready: Optional[Locator] = None) -> None:
        """パスへ遷移し、ready ロケータが表示されるまで待機する。

        Raises:
            ActionError: 遷移に失敗した、または準備完了ロケータが表示されなかった場合
        """
        async with self.action("open", f"/{path}"):
            try:
                await self.elements.goto(path)
                if ready is not None:
                    await waits.wait_for_visible(
                        self.elements, ready,
                        self.timeouts.page_load, self.timeouts.poll_interval,
                    )
            except WaitTimeoutError as exc:
                raise ActionError("open", f"/{path}", exc) from exc

    async def title(self) -> str:
        return await self.elements.title()

    async def current_url(self) -> str:
        return await self.elements.current_url()

    # -------------------------------------------------------------------
    # 待機
    # -------------------------------------------------------------------

    async def wait_for_element(self, locator: Locator, timeout: Optional[int] = None) -> None:
        """要素が表示されるまで待機する。"""
        await waits.wait_for_visible(
            self.elements, locator,
            timeout if timeout is not None else self.timeouts.short_wait,
            self.timeouts.poll_interval,
        )

    async def wait_for_absence(self, locator: Locator, timeout: Optional[int] = None) -> None:
        """要素が非表示・除去されるまで待機する。"""
        await waits.wait_for_hidden(
            self.elements, locator,
            timeout if timeout is not None else self.timeouts.short_wait,
            self.timeouts.poll_interval,
        )

    async def wait_until_interactable(self, locator: Locator, timeout: Optional[int] = None) -> None:
        """要素が可視かつ有効になるまで待機する。"""
        await waits.wait_for_enabled(
            self.elements, locator,
            timeout if timeout is not None else self.timeouts.short_wait,
            self.timeouts.poll_interval,
        )

    async def wait_for_url(
        self, expected: Union[str, Callable[[str], bool]], timeout: Optional[int] = None,
    ) -> str:
        """現在 URL が条件を満たすまで待機する。"""
        return await waits.wait_for_url(
            self.elements, expected,
            timeout if timeout is not None else self.timeouts.short_wait,
            self.timeouts.poll_interval,
        )

    # -------------------------------------------------------------------
    # 操作
    # -------------------------------------------------------------------

    async def click(self, locator: Locator, action: str = "click") -> None:
        """要素の操作可能化を待ってクリックする。

        Raises:
            ActionError: 要素が操作可能にならなかった、またはクリックに失敗した場合
        """
        async with self.action(action, locator):
            try:
                await self.wait_until_interactable(locator)
            except WaitTimeoutError as exc:
                raise ActionError(action, str(locator), exc) from exc
            await self.elements.click(locator)

    async def select(self, locator: Locator, label: str, action: str = "select") -> None:
        """select 要素の表示テキスト label の option を選択する。"""
        async with self.action(action, locator):
            try:
                await self.wait_until_interactable(locator)
            except WaitTimeoutError as exc:
                raise ActionError(action, str(locator), exc) from exc
            await self.elements.select_option(locator, label)

    # -------------------------------------------------------------------
    # テキスト確認
    # -------------------------------------------------------------------

    async def is_text_visible(self, text: str) -> bool:
        """text を含む要素がページ上に表示されているかを返す。"""
        return await self.elements.is_visible(Locator.text(text))

    async def assert_text_visible(self, text: str, timeout: Optional[int] = None) -> None:
        """text がページ上に表示されることを検証する。

        Raises:
            StepAssertionError: タイムアウト内に表示されなかった場合
        """
        try:
            await self.wait_for_element(Locator.text(text, f"テキスト '{text}'"), timeout)
        except WaitTimeoutError as exc:
            raise StepAssertionError(
                f"テキスト '{text}' がページ上に表示されていません", expected="visible", actual="hidden",
            ) from exc
