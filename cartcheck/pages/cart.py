"""
CartPage — カートページ（/cart）のページモデル

カート明細テーブル・数量ドロップダウン・合計金額・チェックアウト導線を扱う。

主な機能:
  - open / click_checkout / click_back_to_shop: ページ遷移
  - get_cart_items / get_product_quantity / get_total_price: 番兵値付きの読み取り
  - assert_product_in_cart / assert_product_absent / assert_product_quantity
  - set_quantity: 数量変更と反映完了までの待機
  - snapshot: UI から観測したカート状態（CartSnapshot）
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from ..core import waits
from ..core.locators import Locator, xpath_literal
from ..core.models import CartSnapshot
from ..errors import StepAssertionError, WaitTimeoutError
from .navigation import NavigationHelper

logger = logging.getLogger(__name__)

_PRICE_PATTERN = re.compile(r"[\d.]+")

# 読み取り失敗時の番兵値
MISSING_QUANTITY = -1
MISSING_PRICE = -1.0


def parse_price(text: Optional[str]) -> float:
    """"Total Price: $45.99" のような文字列から金額を取り出す。失敗時は -1。"""
    if not text:
        return MISSING_PRICE
    match = _PRICE_PATTERN.search(text)
    if match is None:
        return MISSING_PRICE
    try:
        return float(match.group(0))
    except ValueError:
        return MISSING_PRICE


class CartPage:
    """カートページ。"""

    PATH = "cart"

    TABLE = Locator.css("table", "カートテーブル")
    ROWS = Locator.css("tbody > tr", "カート明細行")
    TOTAL_PRICE = Locator.css("h2", "合計金額")
    CHECKOUT_BUTTON = Locator.css("#checkout-button", "チェックアウトボタン")
    SHOP_LINK = Locator.css("#shop-link", "ショップへ戻るリンク")

    def __init__(self, nav: NavigationHelper) -> None:
        self.nav = nav

    # -------------------------------------------------------------------
    # ロケータ
    # -------------------------------------------------------------------

    @staticmethod
    def product_row(name: str) -> Locator:
        """1列目に商品名を含む明細行。"""
        return Locator.xpath(
            f"//tr[td[1][contains(text(), {xpath_literal(name)})]]", f"'{name}' の明細行",
        )

    @staticmethod
    def product_mention(name: str) -> Locator:
        return Locator.xpath(f"//tr[contains(., {xpath_literal(name)})]", f"'{name}' を含む行")

    @classmethod
    def quantity_select(cls, name: str) -> Locator:
        return Locator.css(
            "td:nth-child(2) select", f"'{name}' の数量",
        ).within(cls.product_row(name))

    # -------------------------------------------------------------------
    # ナビゲーション
    # -------------------------------------------------------------------

    async def open(self) -> None:
        """カートページを開き、テーブルの表示まで待機する。"""
        await self.nav.open(self.PATH, ready=self.TABLE)

    async def click_checkout(self) -> None:
        """チェックアウトボタンをクリックし、URL が /checkout を含むまで待機する。"""
        await self.nav.click(self.CHECKOUT_BUTTON, action="checkout")
        await self.nav.wait_for_url("/checkout")

    async def click_back_to_shop(self) -> None:
        """ショップへ戻り、URL が /cart を含まなくなるまで待機する。"""
        await self.nav.click(self.SHOP_LINK, action="back_to_shop")
        await self.nav.wait_for_url(lambda url: "/cart" not in url)

    # -------------------------------------------------------------------
    # 読み取り
    # -------------------------------------------------------------------

    async def get_cart_items(self) -> list[str]:
        """明細行のテキスト一覧を返す。"""
        return await self.nav.elements.texts(self.ROWS)

    async def get_item_count(self) -> int:
        return await self.nav.elements.count(self.ROWS)

    async def get_product_quantity(self, name: str) -> int:
        """商品の選択中数量を返す。行が無い・解釈できない・読み取りに失敗した場合は -1。"""
        try:
            label = await self.nav.elements.selected_label(self.quantity_select(name))
        except Exception as exc:
            logger.debug("数量を読み取れません: %s (%s)", name, exc)
            return MISSING_QUANTITY
        if label is None:
            return MISSING_QUANTITY
        try:
            return int(label.strip())
        except ValueError:
            logger.debug("数量を数値として解釈できません: %s = %r", name, label)
            return MISSING_QUANTITY

    async def get_total_price(self) -> float:
        """合計金額を返す。表示されない・解釈できない・読み取りに失敗した場合は -1。"""
        try:
            await self.nav.wait_for_element(self.TOTAL_PRICE)
            text = await self.nav.elements.text(self.TOTAL_PRICE)
        except WaitTimeoutError:
            return MISSING_PRICE
        except Exception as exc:
            logger.debug("合計金額を読み取れません: %s", exc)
            return MISSING_PRICE
        return parse_price(text)

    async def snapshot(self, name: str, item_id: int) -> CartSnapshot:
        """UI から観測したカート状態を返す。"""
        return CartSnapshot(
            item_id=item_id,
            quantity=await self.get_product_quantity(name),
            total_price=await self.get_total_price(),
            source="ui",
        )

    # -------------------------------------------------------------------
    # 検証
    # -------------------------------------------------------------------

    async def assert_product_in_cart(self, name: str) -> None:
        try:
            await self.nav.wait_for_element(self.product_mention(name))
        except WaitTimeoutError as exc:
            raise StepAssertionError(
                f"商品 '{name}' がカートにありません",
                expected=name, actual=await self.get_cart_items(),
            ) from exc

    async def assert_product_absent(self, name: str) -> None:
        """商品の明細行が消えていることを検証する（消えるまで待機）。"""
        row = self.product_row(name)
        try:
            await waits.wait_for_absence(
                lambda: self.nav.elements.count(row),
                self.nav.timeouts.short_wait,
                self.nav.timeouts.poll_interval,
                description=f"{row} の除去",
            )
        except WaitTimeoutError as exc:
            raise StepAssertionError(
                f"商品 '{name}' がカートに残っています",
                expected="absent", actual=await self.get_cart_items(),
            ) from exc

    async def assert_product_quantity(self, name: str, expected: int) -> None:
        actual = await self.get_product_quantity(name)
        if actual != expected:
            raise StepAssertionError(
                f"商品 '{name}' の数量が一致しません", expected=expected, actual=actual,
            )

    async def assert_cart_empty(self) -> None:
        items = await self.get_cart_items()
        if items:
            raise StepAssertionError(
                f"カートが空ではありません（{len(items)} 件）", expected=[], actual=items,
            )

    # -------------------------------------------------------------------
    # 数量変更
    # -------------------------------------------------------------------

    async def set_quantity(self, name: str, quantity: int) -> None:
        """商品の数量を変更し、反映完了まで待機する。

        数量が変わる場合は合計金額が旧値から変化するまで待ってから、
        ドロップダウンの選択値を確認する。数量 0 は明細行の除去で確認する。
        同じ数量の選択はページ状態を変えないため、選択値の確認のみ行う。

        Args:
            name: 商品名
            quantity: 新しい数量

        Raises:
            ActionError: ドロップダウンの操作に失敗した場合
            WaitTimeoutError: 反映がタイムアウト内に確認できなかった場合
        """
        select = self.quantity_select(name)
        previous = await self.get_product_quantity(name)
        old_price = await self.get_total_price()

        await self.nav.select(select, str(quantity), action="set_quantity")

        timeout = self.nav.timeouts.short_wait
        interval = self.nav.timeouts.poll_interval
        if previous != quantity:
            await waits.wait_for_value_change(
                self.get_total_price, old_price, timeout, interval,
                description="合計金額の更新",
            )

        if quantity == 0:
            row = self.product_row(name)
            await waits.wait_for_absence(
                lambda: self.nav.elements.count(row), timeout, interval,
                description=f"{row} の除去",
            )
            return

        async def _selected() -> bool:
            return await self.get_product_quantity(name) == quantity

        await waits.wait_for(
            _selected, timeout, interval, description=f"'{name}' の数量 = {quantity}",
        )
