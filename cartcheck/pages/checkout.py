"""
CheckoutPage — 注文確認ページ（/checkout）のページモデル
"""

from __future__ import annotations

import logging

from ..core.locators import Locator
from ..errors import StepAssertionError, WaitTimeoutError
from .cart import parse_price
from .navigation import NavigationHelper

logger = logging.getLogger(__name__)

EXPECTED_TITLE = "Checkout"


class CheckoutPage:
    """注文確認ページ。"""

    PATH = "checkout"

    CONTAINER = Locator.css(".checkout-container", "チェックアウト領域")
    TOTAL_PRICE = Locator.css(".total-price", "注文合計")
    THANK_YOU = Locator.css('.thank-you-message, [class*="thank"]', "注文完了メッセージ")

    def __init__(self, nav: NavigationHelper) -> None:
        self.nav = nav

    async def open(self) -> None:
        await self.nav.open(self.PATH, ready=self.CONTAINER)

    async def get_total_price_text(self) -> str:
        """注文合計の表示文字列を返す。表示されない・読み取りに失敗した場合は空文字。"""
        try:
            await self.nav.wait_for_element(self.TOTAL_PRICE)
            text = await self.nav.elements.text(self.TOTAL_PRICE)
        except WaitTimeoutError:
            return ""
        except Exception as exc:
            logger.debug("注文合計を読み取れません: %s", exc)
            return ""
        return text or ""

    async def get_total_price(self) -> float:
        return parse_price(await self.get_total_price_text())

    async def assert_thank_you_message_visible(self) -> None:
        try:
            await self.nav.wait_for_element(self.THANK_YOU)
        except WaitTimeoutError as exc:
            raise StepAssertionError(
                "注文完了メッセージが表示されません", expected="visible", actual="hidden",
            ) from exc

    async def assert_page_title(self, expected: str = EXPECTED_TITLE) -> None:
        actual = await self.nav.title()
        if actual != expected:
            raise StepAssertionError("ページタイトルが一致しません", expected=expected, actual=actual)
