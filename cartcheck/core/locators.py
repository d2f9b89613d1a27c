"""
ロケータ — 要素指定の値型とドライバ抽象

ページモデルが保持する要素指定（Locator）と、それを解決する
ElementProvider Protocol を定義する。ページモデルはこの Protocol の
振る舞いだけに依存し、特定のドライバ実装には依存しない。

主な構成:
  - Locator: セレクタ文字列 + 戦略（css / xpath / text / test_id）の不変値
  - ElementProvider: 要素の検索・読み取り・操作の共通インターフェース
  - PlaywrightElementProvider: Playwright Page による ElementProvider 実装

読み取り系メソッドは 0 件ヒットを例外にせず None / False / 0 を返す。
「まだ描画されていない」状態を呼び出し側のポーリングで扱うため。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Optional, Protocol, runtime_checkable
from urllib.parse import urljoin

if TYPE_CHECKING:
    from playwright.async_api import Locator as PwLocator
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

Strategy = Literal["css", "xpath", "text", "test_id"]


def xpath_literal(value: str) -> str:
    """任意の文字列を XPath 1.0 の文字列リテラルに変換する。

    シングルクォートを含む場合はダブルクォートで囲み、両方を含む場合は
    concat() で連結する。
    """
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


# ---------------------------------------------------------------------------
# Locator 値型
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Locator:
    """0 個以上の要素を特定する不変の要素指定。

    parent を指定すると、親要素の内側に限定して検索する
    （同じ構造の行が複数並ぶ場合に行単位でスコープするため）。

    Attributes:
        strategy: 解決戦略（css, xpath, text, test_id）
        selector: セレクタ文字列
        parent: 検索範囲を限定する親 Locator
        description: ログ・エラーメッセージ用の名前
    """

    strategy: Strategy
    selector: str
    parent: Optional[Locator] = None
    description: str = ""

    @classmethod
    def css(cls, selector: str, description: str = "") -> Locator:
        return cls("css", selector, description=description)

    @classmethod
    def xpath(cls, selector: str, description: str = "") -> Locator:
        return cls("xpath", selector, description=description)

    @classmethod
    def text(cls, text: str, description: str = "") -> Locator:
        return cls("text", text, description=description)

    @classmethod
    def test_id(cls, test_id: str, description: str = "") -> Locator:
        return cls("test_id", test_id, description=description)

    def within(self, parent: Locator) -> Locator:
        """parent の内側に限定した新しい Locator を返す。"""
        return Locator(self.strategy, self.selector, parent=parent, description=self.description)

    def __str__(self) -> str:
        if self.description:
            return self.description
        own = f"{self.strategy}={self.selector}"
        if self.parent is not None:
            return f"{self.parent} >> {own}"
        return own


# ---------------------------------------------------------------------------
# ElementProvider Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class ElementProvider(Protocol):
    """ブラウザドライバの振る舞い面。

    「URL を開く」「要素を探す」「テキスト・属性を読む」「クリック」
    「オプション選択」「現在 URL / タイトル取得」を提供する。
    """

    async def goto(self, path: str = "") -> None: ...

    async def current_url(self) -> str: ...

    async def title(self) -> str: ...

    async def count(self, locator: Locator) -> int: ...

    async def is_visible(self, locator: Locator) -> bool: ...

    async def is_enabled(self, locator: Locator) -> bool: ...

    async def text(self, locator: Locator) -> Optional[str]: ...

    async def texts(self, locator: Locator) -> list[str]: ...

    async def attribute(self, locator: Locator, name: str) -> Optional[str]: ...

    async def click(self, locator: Locator) -> None: ...

    async def select_option(self, locator: Locator, label: str) -> None: ...

    async def selected_label(self, locator: Locator) -> Optional[str]: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def add_script(self, url: str) -> None: ...

    async def screenshot(self, path: str) -> None: ...


# ---------------------------------------------------------------------------
# Playwright 実装
# ---------------------------------------------------------------------------

# 選択中 option の表示テキストを返すスクリプト
_SELECTED_LABEL_JS = (
    "el => el.selectedIndex >= 0 ? el.options[el.selectedIndex].text : null"
)


class PlaywrightElementProvider:
    """Playwright の Page を用いた ElementProvider 実装。

    単一要素を対象とする操作は最初にヒットした要素を使用する。
    """

    def __init__(self, page: Page, base_url: str, action_timeout: int = 5000) -> None:
        """PlaywrightElementProvider を初期化する。

        Args:
            page: Playwright の Page オブジェクト
            base_url: 相対パス解決に使用するベース URL
            action_timeout: クリック等の操作タイムアウト（ミリ秒）
        """
        self._page = page
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._action_timeout = action_timeout

    @property
    def page(self) -> Page:
        return self._page

    # ----- 解決 -----

    def resolve(self, locator: Locator) -> PwLocator:
        """Locator を Playwright Locator に変換する（親 Locator は連結）。"""
        scope: Any = self._page if locator.parent is None else self.resolve(locator.parent)

        if locator.strategy == "css":
            return scope.locator(f"css={locator.selector}")
        if locator.strategy == "xpath":
            return scope.locator(f"xpath={locator.selector}")
        if locator.strategy == "text":
            return scope.get_by_text(locator.selector)
        if locator.strategy == "test_id":
            return scope.get_by_test_id(locator.selector)
        raise ValueError(f"未知のロケータ戦略です: {locator.strategy}")

    # ----- ナビゲーション -----

    async def goto(self, path: str = "") -> None:
        url = urljoin(self._base_url, path)
        logger.debug("goto: %s", url)
        await self._page.goto(url)
        await self._page.wait_for_load_state("domcontentloaded")

    async def current_url(self) -> str:
        return self._page.url

    async def title(self) -> str:
        return await self._page.title()

    # ----- 読み取り -----

    async def count(self, locator: Locator) -> int:
        return await self.resolve(locator).count()

    async def is_visible(self, locator: Locator) -> bool:
        return await self.resolve(locator).first.is_visible()

    async def is_enabled(self, locator: Locator) -> bool:
        target = self.resolve(locator)
        if await target.count() == 0:
            return False
        return await target.first.is_enabled()

    async def text(self, locator: Locator) -> Optional[str]:
        target = self.resolve(locator)
        if await target.count() == 0:
            return None
        return await target.first.inner_text()

    async def texts(self, locator: Locator) -> list[str]:
        return await self.resolve(locator).all_inner_texts()

    async def attribute(self, locator: Locator, name: str) -> Optional[str]:
        target = self.resolve(locator)
        if await target.count() == 0:
            return None
        return await target.first.get_attribute(name)

    async def selected_label(self, locator: Locator) -> Optional[str]:
        target = self.resolve(locator)
        if await target.count() == 0:
            return None
        return await target.first.evaluate(_SELECTED_LABEL_JS)

    # ----- 操作 -----

    async def click(self, locator: Locator) -> None:
        await self.resolve(locator).first.click(timeout=self._action_timeout)

    async def select_option(self, locator: Locator, label: str) -> None:
        await self.resolve(locator).first.select_option(
            label=label, timeout=self._action_timeout,
        )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def add_script(self, url: str) -> None:
        await self._page.add_script_tag(url=url)

    async def screenshot(self, path: str) -> None:
        await self._page.screenshot(path=path)
