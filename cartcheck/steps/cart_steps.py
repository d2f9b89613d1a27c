"""
カート系ステップ — カートへの追加・数量変更・UI/DB 整合性の検証

前提（Given）は API で作り、操作（When）は UI で行い、
結果（Then）は UI と DB の両方から確認する。
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from ..core import waits
from ..errors import StepAssertionError, WaitTimeoutError
from ..pages.home import FIRST_ITEM_ID
from .context import StepContext
from .registry import StepRegistry

logger = logging.getLogger(__name__)

steps = StepRegistry()

# 金額比較の許容誤差
PRICE_TOLERANCE = 0.005


async def _wait_equal(
    ctx: StepContext,
    read: Callable[[], Awaitable[Any]],
    expected: Any,
    description: str,
    message: str,
) -> None:
    """read() が expected になるまで待機し、ならなければ StepAssertionError。"""
    timeouts = ctx.config.timeouts

    async def _matches() -> bool:
        return await read() == expected

    try:
        await waits.wait_for(
            _matches, timeouts.short_wait, timeouts.poll_interval, description=description,
        )
    except WaitTimeoutError as exc:
        raise StepAssertionError(message, expected=expected, actual=await read()) from exc


# ---------------------------------------------------------------------------
# Given
# ---------------------------------------------------------------------------

@steps.given("the cart is empty")
async def cart_is_empty(ctx: StepContext) -> None:
    """API でカートをリセットする。"""
    await ctx.require_api().reset_cart()


@steps.given("the cart contains {int} of item {int}")
async def cart_contains(ctx: StepContext, quantity: int, item_id: int) -> None:
    """API で商品を指定数だけカートに投入する。"""
    api = ctx.require_api()
    for _ in range(quantity):
        await api.add_to_cart(item_id)


@steps.given("I am on the home page")
async def on_home_page(ctx: StepContext) -> None:
    await ctx.home.open()


# ---------------------------------------------------------------------------
# When
# ---------------------------------------------------------------------------

async def _add_and_settle(ctx: StepContext, item_id: int) -> None:
    await ctx.home.add_item_to_cart(item_id)
    await ctx.home.wait_for_notification_cycle()


@steps.when("I add an item to the cart")
async def add_an_item(ctx: StepContext) -> None:
    """先頭の商品を追加し、通知の表示と消滅を待つ。"""
    await _add_and_settle(ctx, FIRST_ITEM_ID)


@steps.when("I add item {int} to the cart")
async def add_item(ctx: StepContext, item_id: int) -> None:
    await _add_and_settle(ctx, item_id)


@steps.when("I add {int} items to the cart")
async def add_items(ctx: StepContext, count: int) -> None:
    """先頭の商品を count 回、1回ずつ通知の消滅を待ってから追加する。"""
    for i in range(count):
        await _add_and_settle(ctx, FIRST_ITEM_ID)
        logger.debug("追加 %d/%d 完了", i + 1, count)


@steps.when("I navigate to the cart")
async def navigate_to_cart(ctx: StepContext) -> None:
    await ctx.home.go_to_cart()


@steps.when("I set the quantity of {string} to {int}")
async def set_quantity(ctx: StepContext, name: str, quantity: int) -> None:
    """数量を変更し、変更前後の合計金額を vars に記録する。"""
    ctx.vars["price_before"] = await ctx.cart.get_total_price()
    await ctx.cart.set_quantity(name, quantity)
    ctx.vars["price_after"] = await ctx.cart.get_total_price()


# ---------------------------------------------------------------------------
# Then
# ---------------------------------------------------------------------------

@steps.then("I should see {int} item in the cart list")
async def cart_list_count(ctx: StepContext, expected: int) -> None:
    """カートページの明細行数を検証する。"""
    await _wait_equal(
        ctx, ctx.cart.get_item_count, expected,
        f"明細行数 = {expected}", "カートの明細行数が一致しません",
    )


@steps.then("I should see {int} items in the cart list")
async def cart_list_count_plural(ctx: StepContext, expected: int) -> None:
    await cart_list_count(ctx, expected)


@steps.then("the database should show {int} item in the cart")
async def database_quantity(ctx: StepContext, expected: int) -> None:
    """DB の cart テーブルで先頭商品の数量を検証する。"""
    db = ctx.require_db()
    await _wait_equal(
        ctx, lambda: db.get_cart_quantity(FIRST_ITEM_ID), expected,
        f"DB 数量 = {expected}", f"DB の商品 {FIRST_ITEM_ID} の数量が一致しません",
    )


@steps.then("the database cart total should be {int}")
async def database_total(ctx: StepContext, expected: int) -> None:
    db = ctx.require_db()
    await _wait_equal(
        ctx, db.get_cart_total, expected,
        f"DB 合計数量 = {expected}", "DB のカート合計数量が一致しません",
    )


@steps.then("the cart count should be {int}")
async def header_cart_count(ctx: StepContext, expected: int) -> None:
    await ctx.home.assert_cart_count(expected)


@steps.then("I should see {string} in the cart")
async def product_in_cart(ctx: StepContext, name: str) -> None:
    await ctx.cart.assert_product_in_cart(name)


@steps.then("{string} should no longer be in the cart")
async def product_absent(ctx: StepContext, name: str) -> None:
    await ctx.cart.assert_product_absent(name)


@steps.then("the quantity of {string} should be {int}")
async def product_quantity(ctx: StepContext, name: str, expected: int) -> None:
    await ctx.cart.assert_product_quantity(name, expected)


@steps.then("the total price should have decreased by {float}")
async def price_decreased(ctx: StepContext, amount: float) -> None:
    """直前の数量変更による合計金額の減少幅を検証する。"""
    if "price_before" not in ctx.vars:
        raise StepAssertionError("数量変更前の合計金額が記録されていません", expected=amount, actual=None)
    before = ctx.vars["price_before"]
    after = ctx.vars.get("price_after")
    if after is None:
        after = await ctx.cart.get_total_price()
    decrease = round(before - after, 2)
    if abs(decrease - amount) > PRICE_TOLERANCE:
        raise StepAssertionError("合計金額の減少幅が一致しません", expected=amount, actual=decrease)


@steps.then("the cart page and the database should agree on item {int}")
async def ui_and_db_agree(ctx: StepContext, item_id: int) -> None:
    """カートページと DB で商品の数量が一致することを検証する。"""
    db = ctx.require_db()
    name = await db.get_item_name(item_id)
    if name is None:
        raise StepAssertionError(f"商品 {item_id} が items テーブルにありません", expected=item_id, actual=None)

    db_view = await db.snapshot(item_id)
    ui_view = await ctx.cart.snapshot(name, item_id)
    if ui_view.quantity == -1 and db_view.quantity == 0:
        return
    if not ui_view.agrees_with(db_view):
        raise StepAssertionError(
            f"商品 '{name}' の数量が UI と DB で一致しません",
            expected=db_view.quantity, actual=ui_view.quantity,
        )
