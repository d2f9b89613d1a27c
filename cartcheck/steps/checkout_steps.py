"""
チェックアウト系ステップ — 注文確定と確認ページの検証
"""

from __future__ import annotations

from ..errors import StepAssertionError
from .cart_steps import PRICE_TOLERANCE
from .context import StepContext
from .registry import StepRegistry

steps = StepRegistry()


@steps.when("I proceed to checkout")
async def proceed_to_checkout(ctx: StepContext) -> None:
    await ctx.cart.click_checkout()


@steps.then("I should see the order confirmation")
async def order_confirmation(ctx: StepContext) -> None:
    await ctx.checkout.assert_thank_you_message_visible()


@steps.then("the checkout total should be {float}")
async def checkout_total(ctx: StepContext, expected: float) -> None:
    actual = await ctx.checkout.get_total_price()
    if abs(actual - expected) > PRICE_TOLERANCE:
        raise StepAssertionError(
            "注文合計が一致しません", expected=expected,
            actual=await ctx.checkout.get_total_price_text(),
        )


@steps.then("the page title should be {string}")
async def page_title(ctx: StepContext, expected: str) -> None:
    await ctx.checkout.assert_page_title(expected)


@steps.then("I should see the text {string}")
async def text_visible(ctx: StepContext, text: str) -> None:
    await ctx.home.assert_text_visible(text)
