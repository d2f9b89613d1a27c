"""
HomePage — ストアトップページ（/）のページモデル

商品一覧・カート件数バッジ・追加完了通知を扱う。

主な機能:
  - open / go_to_cart: ページ遷移
  - add_item_to_cart / add_first_product_to_cart: 商品のカート追加
  - 追加完了通知の表示・消滅の検証
  - get_cart_count / get_product_name / get_product_count: 番兵値付きの読み取り
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core import waits
from ..core.locators import Locator
from ..errors import StepAssertionError, WaitTimeoutError
from .navigation import NavigationHelper

logger = logging.getLogger(__name__)

# 1件目の商品 ID
FIRST_ITEM_ID = 1


class HomePage:
    """ストアトップページ。"""

    PATH = ""

    CART_COUNT = Locator.css("#cart-link span", "カート件数バッジ")
    CART_LINK = Locator.css("#cart-link", "カートリンク")
    PRODUCT_ITEMS = Locator.css("ul > li", "商品一覧")
    NOTIFICATION = Locator.css(".notification", "追加完了通知")

    def __init__(self, nav: NavigationHelper) -> None:
        self.nav = nav

    # -------------------------------------------------------------------
    # ロケータ
    # -------------------------------------------------------------------

    @staticmethod
    def add_to_cart_button(item_id: int) -> Locator:
        """商品 ID の行内にある「カートに追加」ボタン。"""
        return Locator.xpath(
            f"//form[.//input[@name='itemId' and @value='{item_id}']]"
            "//button[contains(@type, 'submit')]",
            f"商品 {item_id} の追加ボタン",
        )

    @staticmethod
    def product_name_heading(item_id: int) -> Locator:
        return Locator.xpath(
            f"//form[.//input[@name='itemId' and @value='{item_id}']]/ancestor::li//h2",
            f"商品 {item_id} の名前",
        )

    # -------------------------------------------------------------------
    # ナビゲーション
    # -------------------------------------------------------------------

    async def open(self) -> None:
        """トップページを開き、商品一覧の表示まで待機する。"""
        await self.nav.open(self.PATH, ready=self.PRODUCT_ITEMS)

    async def go_to_cart(self) -> None:
        """カートリンクをクリックし、URL が /cart を含むまで待機する。"""
        await self.nav.click(self.CART_LINK, action="go_to_cart")
        await self.nav.wait_for_url("/cart")

    # -------------------------------------------------------------------
    # カート操作
    # -------------------------------------------------------------------

    async def add_item_to_cart(self, item_id: int) -> None:
        """商品 ID のカート追加ボタンをクリックする。

        クリック後の状態変化は待機しない。呼び出し側が通知または
        件数バッジで完了を確認する。

        Raises:
            ActionError: ボタンが操作可能にならなかった、またはクリックに失敗した場合
        """
        await self.nav.click(self.add_to_cart_button(item_id), action="add_to_cart")

    async def add_first_product_to_cart(self) -> None:
        await self.add_item_to_cart(FIRST_ITEM_ID)

    async def get_cart_count(self) -> int:
        """ヘッダーのカート件数を返す。読み取れない場合は 0。"""
        try:
            text = await self.nav.elements.text(self.CART_COUNT)
        except Exception as exc:
            logger.debug("カート件数を読み取れません: %s", exc)
            return 0
        if text is None:
            return 0
        try:
            return int(text.strip())
        except ValueError:
            logger.debug("カート件数を数値として解釈できません: %r", text)
            return 0

    async def assert_cart_count(self, expected: int) -> None:
        """カート件数バッジが expected になることを検証する。

        バッジの更新はクリックに対して非同期のため、タイムアウトまで
        ポーリングしてから判定する。
        """
        try:
            await self.nav.wait_for_element(self.CART_COUNT)
            await self._wait_count(expected)
        except WaitTimeoutError as exc:
            actual = await self.get_cart_count()
            raise StepAssertionError(
                "カート件数が一致しません", expected=expected, actual=actual,
            ) from exc

    async def _wait_count(self, expected: int) -> None:
        async def _matches() -> bool:
            return await self.get_cart_count() == expected

        await waits.wait_for(
            _matches,
            self.nav.timeouts.short_wait,
            self.nav.timeouts.poll_interval,
            description=f"カート件数 = {expected}",
        )

    # -------------------------------------------------------------------
    # 追加完了通知
    # -------------------------------------------------------------------

    async def assert_notification_visible(self) -> None:
        """追加完了通知が表示されることを検証する。"""
        try:
            await self.nav.wait_for_element(self.NOTIFICATION)
        except WaitTimeoutError as exc:
            raise StepAssertionError(
                "追加完了通知が表示されません", expected="visible", actual="hidden",
            ) from exc
        text = await self.nav.elements.text(self.NOTIFICATION)
        logger.debug("追加完了通知: %s", text)

    async def assert_notification_hidden(self) -> None:
        """追加完了通知が消えることを検証する（表示中なら消えるまで待機）。"""
        try:
            await self.nav.wait_for_absence(self.NOTIFICATION)
        except WaitTimeoutError as exc:
            raise StepAssertionError(
                "追加完了通知が消えません", expected="hidden", actual="visible",
            ) from exc

    async def wait_for_notification_cycle(self) -> None:
        """通知の表示から消滅までを待機する。連続追加の間に挟む。"""
        await self.assert_notification_visible()
        await self.assert_notification_hidden()

    # -------------------------------------------------------------------
    # 商品情報
    # -------------------------------------------------------------------

    async def get_product_name(self, item_id: int) -> Optional[str]:
        """商品 ID の商品名を返す。見つからない場合は None。"""
        text = await self.nav.elements.text(self.product_name_heading(item_id))
        return text.strip() if text is not None else None

    async def get_product_count(self) -> int:
        return await self.nav.elements.count(self.PRODUCT_ITEMS)

    async def is_add_to_cart_disabled(self, item_id: int) -> bool:
        """追加ボタンが無効かを返す。ボタンが存在しない場合は False。"""
        button = self.add_to_cart_button(item_id)
        if await self.nav.elements.count(button) == 0:
            return False
        return not await self.nav.elements.is_enabled(button)

    async def assert_text_visible(self, text: str) -> None:
        await self.nav.assert_text_visible(text)
