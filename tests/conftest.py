"""
テスト共通フィクスチャ — 疑似ストアフロントと実行設定

実際のブラウザ・HTTP サーバーは起動しない。ElementProvider と
APIRequestContext の振る舞いを、SQLite ファイルを状態の正とする
インメモリの疑似ストアフロントで再現する。

疑似ストアフロントの挙動:
  - 商品: 1 = Koala ($10.00), 2 = Dog ($5.00)
  - カート追加後、追加完了通知が NOTIFICATION_MS の間だけ表示される
  - 画面操作によるカート変更後、ヘッダー件数と合計金額の表示は SETTLE_MS 遅れて
    更新される（API による変更・ページ遷移では遅延しない）
  - 数量 0 を選択すると明細行が即座に除去される
"""

from __future__ import annotations

import re
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from cartcheck.clients.api import CartApiClient
from cartcheck.clients.db import CartDatabase
from cartcheck.config import RunConfig, Timeouts
from cartcheck.core.locators import Locator
from cartcheck.steps.context import StepContext

BASE_URL = "http://shop.test"
PRODUCTS = {1: ("Koala", 10.0), 2: ("Dog", 5.0)}
NOTIFICATION_MS = 80
SETTLE_MS = 40

_TITLES = {"": "Home", "cart": "Cart", "checkout": "Checkout"}
_ROW_NAME = re.compile(r"contains\(text\(\), (['\"])(.+?)\1\)")
_MENTION_NAME = re.compile(r"contains\(\., (['\"])(.+?)\1\)")
_ITEM_ID = re.compile(r"@value='(\d+)'")


def _check_xpath_quotes(selector: str) -> None:
    """閉じられていない文字列リテラルを含む XPath は、ブラウザと同様に拒否する。"""
    quote: Optional[str] = None
    for char in selector:
        if quote is None and char in "'\"":
            quote = char
        elif char == quote:
            quote = None
    if quote is not None:
        raise RuntimeError(f"Unexpected token in XPath: {selector}")


# ---------------------------------------------------------------------------
# 疑似ストアフロント
# ---------------------------------------------------------------------------

@dataclass
class FakeElement:
    """ヒットした要素の最小表現。"""

    text: str = ""
    visible: bool = True
    enabled: bool = True
    selected: Optional[str] = None
    on_click: Optional[Callable[[], None]] = None
    on_select: Optional[Callable[[str], None]] = None


class FakeStorefront:
    """ElementProvider 互換の疑似ストアフロント。

    カート状態は SQLite ファイル（cart / items テーブル）に保持し、
    CartDatabase からも同じ状態が観測できる。
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.path = ""
        self.clicks: list[str] = []
        self.scripts: list[str] = []
        self.screenshots: list[str] = []
        self.axe_result: dict[str, Any] = {"passes": [], "incomplete": [], "violations": []}
        self.fail_goto = False
        self.add_button_enabled = True
        self._notification_until = 0.0
        self._settle_at = 0.0
        self._count_before = 0
        self._total_before = 0.0
        self._init_db()

    # ----- DB -----

    def _init_db(self) -> None:
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            conn.execute("CREATE TABLE IF NOT EXISTS items (id INTEGER PRIMARY KEY, name TEXT, price REAL)")
            conn.execute("CREATE TABLE IF NOT EXISTS cart (item_id INTEGER PRIMARY KEY, quantity INTEGER)")
            conn.executemany(
                "INSERT OR REPLACE INTO items (id, name, price) VALUES (?, ?, ?)",
                [(item_id, name, price) for item_id, (name, price) in PRODUCTS.items()],
            )

    def _write(self, query: str, params: tuple = ()) -> None:
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            conn.execute(query, params)

    def cart(self) -> dict[int, int]:
        with closing(sqlite3.connect(self.db_path)) as conn:
            rows = conn.execute("SELECT item_id, quantity FROM cart ORDER BY item_id").fetchall()
        return {item_id: quantity for item_id, quantity in rows if quantity > 0}

    def cart_count(self) -> int:
        return sum(self.cart().values())

    def cart_total(self) -> float:
        return sum(PRODUCTS[item_id][1] * q for item_id, q in self.cart().items())

    def _before_change(self) -> None:
        self._count_before = self.displayed_count()
        self._total_before = self.displayed_total()
        self._settle_at = time.monotonic() + SETTLE_MS / 1000.0

    def add(self, item_id: int) -> None:
        self._write(
            "INSERT INTO cart (item_id, quantity) VALUES (?, 1) "
            "ON CONFLICT(item_id) DO UPDATE SET quantity = quantity + 1",
            (item_id,),
        )

    def set_quantity(self, item_id: int, quantity: int) -> None:
        if quantity == 0:
            self._write("DELETE FROM cart WHERE item_id = ?", (item_id,))
        else:
            self._write("UPDATE cart SET quantity = ? WHERE item_id = ?", (quantity, item_id))

    def reset(self) -> None:
        self._write("DELETE FROM cart")
        self._settle_at = 0.0

    # ----- 表示値 -----

    def _settled(self) -> bool:
        return time.monotonic() >= self._settle_at

    def displayed_count(self) -> int:
        return self.cart_count() if self._settled() else self._count_before

    def displayed_total(self) -> float:
        return self.cart_total() if self._settled() else self._total_before

    def notification_visible(self) -> bool:
        return time.monotonic() < self._notification_until

    # ----- 要素解決 -----

    def _click_add(self, item_id: int) -> None:
        self._before_change()
        self.add(item_id)
        self._notification_until = time.monotonic() + NOTIFICATION_MS / 1000.0

    def _select_quantity(self, item_id: int, label: str) -> None:
        self._before_change()
        self.set_quantity(item_id, int(label))

    def _navigate(self, path: str) -> Callable[[], None]:
        def _go() -> None:
            self.path = path
            self._settle_at = 0.0
        return _go

    def _row_for(self, name: str) -> Optional[FakeElement]:
        for item_id, quantity in self.cart().items():
            product, price = PRODUCTS[item_id]
            if name in product:
                return FakeElement(text=f"{product}\t{quantity}\t${price:.2f}")
        return None

    def _quantity_select(self, name: str) -> Optional[FakeElement]:
        for item_id, quantity in self.cart().items():
            if name in PRODUCTS[item_id][0]:
                return FakeElement(
                    selected=str(quantity),
                    on_select=lambda label, i=item_id: self._select_quantity(i, label),
                )
        return None

    def find(self, locator: Locator) -> list[FakeElement]:
        page = self.path
        selector = locator.selector
        for scope in (locator, locator.parent):
            if scope is not None and scope.strategy == "xpath":
                _check_xpath_quotes(scope.selector)

        if locator.strategy == "text":
            texts = [
                e.text
                for css in ("ul > li", "tbody > tr", "h2", ".total-price", ".thank-you-message")
                for e in self.find(Locator.css(css))
            ]
            return [FakeElement(text=selector)] if any(selector in t for t in texts) else []

        if locator.parent is not None:
            match = _ROW_NAME.search(locator.parent.selector)
            if page == "cart" and match and selector == "td:nth-child(2) select":
                element = self._quantity_select(match.group(2))
                return [element] if element else []
            return []

        if locator.strategy == "xpath":
            if page == "" and (item := _ITEM_ID.search(selector)):
                item_id = int(item.group(1))
                if item_id not in PRODUCTS:
                    return []
                if selector.endswith("//h2"):
                    return [FakeElement(text=PRODUCTS[item_id][0])]
                return [FakeElement(
                    text="Add to cart",
                    enabled=self.add_button_enabled,
                    on_click=lambda: self._click_add(item_id),
                )]
            if page == "cart" and (row := _ROW_NAME.search(selector) or _MENTION_NAME.search(selector)):
                element = self._row_for(row.group(2))
                return [element] if element else []
            return []

        if page == "":
            if selector == "#cart-link span":
                return [FakeElement(text=str(self.displayed_count()))]
            if selector == "#cart-link":
                return [FakeElement(text="Cart", on_click=self._navigate("cart"))]
            if selector == "ul > li":
                return [FakeElement(text=f"{n} ${p:.2f}") for n, p in PRODUCTS.values()]
            if selector == ".notification":
                return [FakeElement(text="Item added to cart", visible=self.notification_visible())]
        if page == "cart":
            if selector == "table":
                return [FakeElement()]
            if selector == "tbody > tr":
                return [e for e in (self._row_for(PRODUCTS[i][0]) for i in self.cart()) if e]
            if selector == "h2":
                return [FakeElement(text=f"Total Price: ${self.displayed_total():.2f}")]
            if selector == "#checkout-button":
                return [FakeElement(text="Checkout", on_click=self._navigate("checkout"))]
            if selector == "#shop-link":
                return [FakeElement(text="Shop", on_click=self._navigate(""))]
        if page == "checkout":
            if selector == ".checkout-container":
                return [FakeElement()]
            if selector == ".total-price":
                return [FakeElement(text=f"Total: ${self.cart_total():.2f}")]
            if selector.startswith(".thank-you-message"):
                return [FakeElement(text="Thank you for your order!")]
        return []

    # ----- ElementProvider -----

    async def goto(self, path: str = "") -> None:
        if self.fail_goto:
            raise RuntimeError("net::ERR_CONNECTION_REFUSED")
        self.path = path.strip("/")
        self._settle_at = 0.0

    async def current_url(self) -> str:
        return f"{BASE_URL}/{self.path}"

    async def title(self) -> str:
        return _TITLES.get(self.path, "")

    async def count(self, locator: Locator) -> int:
        return len(self.find(locator))

    async def is_visible(self, locator: Locator) -> bool:
        found = self.find(locator)
        return bool(found) and found[0].visible

    async def is_enabled(self, locator: Locator) -> bool:
        found = self.find(locator)
        return bool(found) and found[0].enabled

    async def text(self, locator: Locator) -> Optional[str]:
        found = self.find(locator)
        return found[0].text if found else None

    async def texts(self, locator: Locator) -> list[str]:
        return [e.text for e in self.find(locator)]

    async def attribute(self, locator: Locator, name: str) -> Optional[str]:
        return None

    async def click(self, locator: Locator) -> None:
        found = self.find(locator)
        if not found:
            raise RuntimeError(f"要素が見つかりません: {locator}")
        self.clicks.append(str(locator))
        if found[0].on_click is not None:
            found[0].on_click()

    async def select_option(self, locator: Locator, label: str) -> None:
        found = self.find(locator)
        if not found or found[0].on_select is None:
            raise RuntimeError(f"select 要素が見つかりません: {locator}")
        found[0].on_select(label)

    async def selected_label(self, locator: Locator) -> Optional[str]:
        found = self.find(locator)
        return found[0].selected if found else None

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return self.axe_result

    async def add_script(self, url: str) -> None:
        self.scripts.append(url)

    async def screenshot(self, path: str) -> None:
        Path(path).write_bytes(b"\x89PNG")
        self.screenshots.append(path)


# ---------------------------------------------------------------------------
# 疑似 APIRequestContext
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body


class FakeRequest:
    """POST /reset-cart と POST /add-to-cart だけを受け付ける APIRequestContext。"""

    def __init__(self, storefront: FakeStorefront) -> None:
        self.storefront = storefront
        self.forced_status: Optional[int] = None
        self.posts: list[tuple[str, Any]] = []

    async def post(self, path: str, data: Any = None) -> FakeResponse:
        self.posts.append((path, data))
        if self.forced_status is not None:
            return FakeResponse(self.forced_status, "Internal Server Error")
        if path == "/reset-cart":
            self.storefront.reset()
            return FakeResponse(302)
        if path == "/add-to-cart":
            self.storefront.add(int(data["itemId"]))
            return FakeResponse(302)
        return FakeResponse(404, "Not Found")

    async def dispose(self) -> None:
        pass


class FakeSession:
    """BrowserSession 互換の疑似セッション。"""

    def __init__(self, storefront: FakeStorefront, config: RunConfig) -> None:
        self.elements = storefront
        self.request = FakeRequest(storefront)
        self.api = CartApiClient(self.request)
        self.db = CartDatabase(config.db_path) if config.db_path else None
        self.closed = False

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "shop.db"


@pytest.fixture
def storefront(db_path: Path) -> FakeStorefront:
    """商品2件・空カートの疑似ストアフロント。"""
    return FakeStorefront(db_path)


@pytest.fixture
def fast_timeouts() -> Timeouts:
    """テスト用の短いタイムアウト設定。"""
    return Timeouts(page_load=1000, short_wait=1000, poll_interval=10, step=5000)


@pytest.fixture
def run_config(tmp_path: Path, db_path: Path, fast_timeouts: Timeouts) -> RunConfig:
    return RunConfig(
        base_url=BASE_URL,
        db_path=str(db_path),
        artifacts_dir=tmp_path / "artifacts",
        timeouts=fast_timeouts,
    )


@pytest.fixture
def fake_request(storefront: FakeStorefront) -> FakeRequest:
    return FakeRequest(storefront)


@pytest.fixture
def step_context(storefront: FakeStorefront, fake_request: FakeRequest, run_config: RunConfig) -> StepContext:
    """疑似ストアフロントに接続した StepContext。"""
    return StepContext.create(
        run_config,
        storefront,
        api=CartApiClient(fake_request),
        db=CartDatabase(run_config.db_path),
    )


@pytest.fixture
def session_factory(storefront: FakeStorefront) -> Callable[[RunConfig], FakeSession]:
    """ScenarioRunner に渡すセッションファクトリ。生成したセッションを記録する。"""
    sessions: list[FakeSession] = []

    def _factory(config: RunConfig) -> FakeSession:
        session = FakeSession(storefront, config)
        sessions.append(session)
        return session

    _factory.sessions = sessions  # type: ignore[attr-defined]
    return _factory
