"""
アクションイベント — ページ操作の構造化記録

ページモデルは操作ごとにログを直接出力せず、ActionEvent を EventLog に
記録する。Runner がステップ単位でイベントを切り出して StepResult に添付し、
Reporter がログ行・レポートに変換する。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional


@dataclass(frozen=True)
class ActionEvent:
    """1回のページ操作の記録。

    Attributes:
        action: 操作名（open, click, add_to_cart 等）
        target: 操作対象の説明
        outcome: 結果（ok / failed）
        duration_ms: 所要時間（ミリ秒）
        detail: 補足情報（失敗時はエラーメッセージ）
        timestamp: 記録日時
    """

    action: str
    target: str
    outcome: Literal["ok", "failed"]
    duration_ms: float
    detail: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "target": self.target,
            "outcome": self.outcome,
            "duration_ms": self.duration_ms,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(),
        }


class EventLog:
    """シナリオ単位の ActionEvent 記録先。

    シナリオごとに生成され、並列フロー間で共有しない。
    """

    def __init__(self) -> None:
        self._events: list[ActionEvent] = []

    def record(self, event: ActionEvent) -> None:
        self._events.append(event)

    def mark(self) -> int:
        """現在位置を返す。since() と組み合わせてステップ単位で切り出す。"""
        return len(self._events)

    def since(self, mark: int) -> tuple[ActionEvent, ...]:
        """mark 以降に記録されたイベントを返す。"""
        return tuple(self._events[mark:])

    def __iter__(self):
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)
