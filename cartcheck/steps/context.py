"""
StepContext — シナリオ単位のステップ実行コンテキスト

シナリオ開始時に実行設定から生成し、そのシナリオのステップにだけ渡す。
ブラウザ・API・DB の各クライアントとページモデルをここで束ね、
シナリオ間でグローバルに共有しない。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..clients.api import CartApiClient
from ..clients.db import CartDatabase
from ..config import RunConfig
from ..core.events import EventLog
from ..core.locators import ElementProvider
from ..core.models import Attachment
from ..errors import SetupError
from ..pages import CartPage, CheckoutPage, HomePage, NavigationHelper

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """ステップ実行時のコンテキスト情報。

    Attributes:
        config: 実行設定
        elements: ブラウザドライバの ElementProvider
        events: 操作イベントの記録先
        api: カート API クライアント（base_url 未設定時は None）
        db: ショップ DB クライアント（db_path 未設定時は None）
        home / cart / checkout: ページモデル
        vars: ステップ間で値を受け渡すための領域
        attachments: シナリオに添付する成果物
        metadata: レポートに出力するメタデータ
    """

    config: RunConfig
    elements: ElementProvider
    events: EventLog
    home: HomePage
    cart: CartPage
    checkout: CheckoutPage
    api: Optional[CartApiClient] = None
    db: Optional[CartDatabase] = None
    vars: dict[str, Any] = field(default_factory=dict)
    attachments: list[Attachment] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        config: RunConfig,
        elements: ElementProvider,
        api: Optional[CartApiClient] = None,
        db: Optional[CartDatabase] = None,
    ) -> StepContext:
        """ページモデルを合成した新しいコンテキストを生成する。"""
        events = EventLog()
        nav = NavigationHelper(elements, events, config.timeouts)
        return cls(
            config=config,
            elements=elements,
            events=events,
            home=HomePage(nav),
            cart=CartPage(nav),
            checkout=CheckoutPage(nav),
            api=api,
            db=db,
        )

    def require_api(self) -> CartApiClient:
        if self.api is None:
            raise SetupError("API クライアントが設定されていません（base_url を指定してください）")
        return self.api

    def require_db(self) -> CartDatabase:
        if self.db is None:
            raise SetupError("データベースが設定されていません（db_path を指定してください）")
        return self.db

    def attach(self, name: str, content: Union[str, bytes], mime_type: str = "text/plain") -> None:
        """成果物を添付する。"""
        self.attachments.append(Attachment(name, content, mime_type))

    def add_metadata(self, key: str, value: str) -> None:
        logger.debug("メタデータ: %s = %s", key, value)
        self.metadata[key] = value
