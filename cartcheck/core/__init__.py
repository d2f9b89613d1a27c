# コアモジュール
# 待機戦略、ロケータ、操作イベント、共有データモデルを提供
# Runner / Reporter / BrowserSession は各サブモジュールから直接インポートする

from .events import ActionEvent, EventLog
from .locators import ElementProvider, Locator, PlaywrightElementProvider
from .models import Attachment, CartSnapshot
from .waits import WaitCondition, wait_for, wait_for_absence

__all__ = [
    "ActionEvent",
    "Attachment",
    "CartSnapshot",
    "ElementProvider",
    "EventLog",
    "Locator",
    "PlaywrightElementProvider",
    "WaitCondition",
    "wait_for",
    "wait_for_absence",
]
