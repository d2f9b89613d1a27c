"""
ステップライブラリモジュール

カート・チェックアウト・アクセシビリティのステップ定義を提供する。

主要エクスポート:
  - StepRegistry: ステップ定義の登録・照合・一覧
  - StepDefinition / StepMatch / StepInfo
  - StepContext: シナリオ単位の実行コンテキスト
  - create_full_registry: 全ステップ登録済みレジストリの生成
"""

from .context import StepContext
from .registry import StepDefinition, StepInfo, StepMatch, StepRegistry

__all__ = [
    "StepContext",
    "StepDefinition",
    "StepInfo",
    "StepMatch",
    "StepRegistry",
    "create_full_registry",
]


def create_full_registry() -> StepRegistry:
    """全ステップが登録された StepRegistry を生成する。

    Returns:
        全ステップが登録された StepRegistry
    """
    from . import accessibility_steps, cart_steps, checkout_steps

    registry = StepRegistry()
    registry.include(cart_steps.steps)
    registry.include(checkout_steps.steps)
    registry.include(accessibility_steps.steps)
    return registry
