"""
CartApiClient — テスト対象アプリのカート API クライアント

シナリオの前提状態（カートのリセット・投入）を UI を介さずに作る。
2xx/3xx 以外の応答はセットアップ失敗として即座に SetupError を送出し、
UI ステップの実行前にシナリオを中断させる。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import SetupError

if TYPE_CHECKING:
    from playwright.async_api import APIRequestContext, APIResponse

logger = logging.getLogger(__name__)

RESET_CART_PATH = "/reset-cart"
ADD_TO_CART_PATH = "/add-to-cart"


def is_success_status(status: int) -> bool:
    """2xx（成功）と 3xx（リダイレクト）を成功とみなす。"""
    return 200 <= status < 400


class CartApiClient:
    """カート API クライアント。

    シナリオごとに生成した APIRequestContext を受け取る。
    複数シナリオ間で共有しない。
    """

    def __init__(self, request: APIRequestContext) -> None:
        self._request = request

    async def reset_cart(self) -> int:
        """POST /reset-cart でカートを空にする。

        Returns:
            HTTP ステータスコード

        Raises:
            SetupError: 成功以外の応答の場合
        """
        response = await self._request.post(RESET_CART_PATH)
        await self._ensure_success(response, "カートのリセット")
        logger.info("カートをリセットしました（status: %d）", response.status)
        return response.status

    async def add_to_cart(self, item_id: int) -> int:
        """POST /add-to-cart で商品を1つカートに追加する。

        Args:
            item_id: 商品 ID

        Returns:
            HTTP ステータスコード

        Raises:
            SetupError: 成功以外の応答の場合
        """
        response = await self._request.post(ADD_TO_CART_PATH, data={"itemId": item_id})
        await self._ensure_success(response, f"商品 {item_id} のカート追加")
        logger.info("商品 %d をカートに追加しました（status: %d）", item_id, response.status)
        return response.status

    @staticmethod
    async def _ensure_success(response: APIResponse, operation: str) -> None:
        if is_success_status(response.status):
            return
        body = await response.text()
        raise SetupError(f"{operation}に失敗しました。status: {response.status}, body: {body}")
