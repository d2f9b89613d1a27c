"""
共有データモデル — 複数レイヤーから観測される値型
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

SnapshotSource = Literal["ui", "api", "db"]


@dataclass(frozen=True)
class CartSnapshot:
    """ある時点で観測したカート状態。

    同じ論理状態を UI・API・DB のそれぞれから独立に観測したもので、
    検証ポイントでは互いに一致しなければならない。

    Attributes:
        item_id: 商品 ID
        quantity: 数量（UI で行が無い場合は -1）
        total_price: 合計金額（観測元が金額を持たない場合は -1）
        source: 観測元
    """

    item_id: int
    quantity: int
    total_price: float = -1.0
    source: SnapshotSource = "ui"

    def agrees_with(self, other: CartSnapshot) -> bool:
        """同じ商品について数量が一致するかを返す。"""
        return self.item_id == other.item_id and self.quantity == other.quantity


@dataclass(frozen=True)
class Attachment:
    """ステップ・シナリオに添付する成果物。

    Attributes:
        name: 添付名（レポート上の見出し）
        content: 本文（テキストまたはバイナリ）
        mime_type: MIME タイプ
    """

    name: str
    content: Union[str, bytes]
    mime_type: str = "text/plain"

    @property
    def is_text(self) -> bool:
        return isinstance(self.content, str)
