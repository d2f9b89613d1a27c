"""
CartDatabase — テスト対象アプリの SQLite データベース読み取り

cart(item_id, quantity) と items(id, name) テーブルへの点照会を提供する。
接続はクエリごとに開いて直後に閉じ、ワーカースレッドで実行する。

主な機能:
  - fetch_one / fetch_all / execute: 汎用クエリ
  - reset_table: テーブルの全行削除
  - get_cart_quantity / get_item_name / get_cart_total: カート状態の照会
  - snapshot: DB から観測したカート状態（CartSnapshot）
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from ..core.models import CartSnapshot

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class CartDatabase:
    """ショップ DB への読み書きクライアント。

    Attributes:
        db_path: SQLite ファイルの絶対パス（相対パスは作業ディレクトリ基準で解決）
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = Path(db_path).resolve()

    # -------------------------------------------------------------------
    # 汎用クエリ
    # -------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_one_sync(self, query: str, params: Sequence[Any]) -> Optional[dict[str, Any]]:
        with closing(self._connect()) as conn:
            row = conn.execute(query, params).fetchone()
        return dict(row) if row is not None else None

    def _fetch_all_sync(self, query: str, params: Sequence[Any]) -> list[dict[str, Any]]:
        with closing(self._connect()) as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def _execute_sync(self, query: str, params: Sequence[Any]) -> None:
        with closing(self._connect()) as conn:
            with conn:
                conn.execute(query, params)

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[dict[str, Any]]:
        """SELECT の先頭行を辞書で返す。行が無い場合は None。"""
        return await asyncio.to_thread(self._fetch_one_sync, query, params)

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._fetch_all_sync, query, params)

    async def execute(self, query: str, params: Sequence[Any] = ()) -> None:
        """INSERT/UPDATE/DELETE を実行してコミットする。"""
        await asyncio.to_thread(self._execute_sync, query, params)

    async def reset_table(self, table: str) -> None:
        """テーブルの全行を削除する。

        Raises:
            ValueError: テーブル名が識別子として不正な場合
        """
        if not _IDENTIFIER.match(table):
            raise ValueError(f"不正なテーブル名です: {table!r}")
        await self.execute(f"DELETE FROM {table}")
        logger.debug("テーブルをクリアしました: %s", table)

    # -------------------------------------------------------------------
    # カート照会
    # -------------------------------------------------------------------

    async def get_cart_quantity(self, item_id: int) -> int:
        """カート内の商品数量を返す。カートに無い場合は 0。"""
        row = await self.fetch_one("SELECT quantity FROM cart WHERE item_id = ?", (item_id,))
        if row is None or row["quantity"] is None:
            return 0
        return int(row["quantity"])

    async def get_item_name(self, item_id: int) -> Optional[str]:
        row = await self.fetch_one("SELECT name FROM items WHERE id = ?", (item_id,))
        if row is None or not row["name"]:
            return None
        return str(row["name"])

    async def get_cart_total(self) -> int:
        """カート内の全数量の合計を返す。空の場合は 0。"""
        row = await self.fetch_one("SELECT SUM(quantity) AS total FROM cart")
        if row is None or row["total"] is None:
            return 0
        return int(row["total"])

    async def snapshot(self, item_id: int) -> CartSnapshot:
        return CartSnapshot(
            item_id=item_id,
            quantity=await self.get_cart_quantity(item_id),
            source="db",
        )
