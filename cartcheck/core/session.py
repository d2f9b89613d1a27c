"""
BrowserSession — シナリオ単位のブラウザ・API・DB セッション

1シナリオの実行に必要な外部リソース（Playwright ブラウザ、API 用の
APIRequestContext、DB クライアント）をまとめて確保し、
async with の終了時に確保と逆順で解放する。並列実行される
シナリオ同士はセッションを共有しない。

主な機能:
  - ブラウザの起動（headed/headless・ブラウザ種別の切り替え）
  - Context / Page の生成と ElementProvider の構築
  - APIRequestContext の生成と CartApiClient の構築
  - リソースの安全なクリーンアップ
"""

from __future__ import annotations

import enum
import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Optional

from ..clients.api import CartApiClient
from ..clients.db import CartDatabase
from ..config import RunConfig
from .locators import PlaywrightElementProvider

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# セッション状態
# ---------------------------------------------------------------------------

class SessionState(enum.Enum):
    """ブラウザセッションの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# BrowserSession 本体
# ---------------------------------------------------------------------------

class BrowserSession:
    """1シナリオ分の外部リソースを管理する非同期コンテキストマネージャ。

    使用例::

        async with BrowserSession(config) as session:
            await session.elements.goto("")
            await session.api.reset_cart()

    Attributes:
        elements: Playwright Page による ElementProvider
        api: カート API クライアント
        db: ショップ DB クライアント（db_path 未設定時は None）
    """

    def __init__(self, config: RunConfig) -> None:
        self._config = config
        self._stack = AsyncExitStack()
        self._state = SessionState.IDLE
        self._page: Optional[Page] = None
        self.elements: Optional[PlaywrightElementProvider] = None
        self.api: Optional[CartApiClient] = None
        self.db: Optional[CartDatabase] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def page(self) -> Optional[Page]:
        """現在の Page オブジェクトを返す。非アクティブ時は None。"""
        if self._state != SessionState.ACTIVE:
            return None
        return self._page

    async def __aenter__(self) -> BrowserSession:
        """ブラウザ・API コンテキストを起動する。

        Raises:
            SetupError: base_url が未設定の場合
        """
        from playwright.async_api import async_playwright

        base_url = self._config.require_base_url()
        self._state = SessionState.LAUNCHING
        logger.info(
            "ブラウザを起動しています... (browser=%s, headed=%s)",
            self._config.browser, self._config.headed,
        )

        try:
            pw = await self._stack.enter_async_context(async_playwright())
            browser_type = getattr(pw, self._config.browser)
            browser = await browser_type.launch(
                headless=not self._config.headed,
                slow_mo=self._config.slow_mo,
            )
            self._stack.push_async_callback(browser.close)

            context = await browser.new_context(base_url=base_url)
            self._stack.push_async_callback(context.close)
            self._page = await context.new_page()
            self.elements = PlaywrightElementProvider(
                self._page, base_url, action_timeout=self._config.timeouts.short_wait,
            )

            request = await pw.request.new_context(base_url=base_url)
            self._stack.push_async_callback(request.dispose)
            self.api = CartApiClient(request)

            if self._config.db_path:
                self.db = CartDatabase(self._config.db_path)
        except BaseException:
            logger.exception("ブラウザセッションの起動に失敗しました")
            await self._close()
            raise

        self._state = SessionState.ACTIVE
        logger.info("ブラウザを起動しました")
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self._close()

    async def _close(self) -> None:
        if self._state == SessionState.CLOSED:
            return
        try:
            await self._stack.aclose()
        finally:
            self._page = None
            self._state = SessionState.CLOSED
            logger.info("ブラウザを終了しました")
