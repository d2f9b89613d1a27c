"""
ステップレジストリ — ステップ文と実装の束縛・照合・一覧

Gherkin のステップ文を Cucumber Expression で照合し、型付き引数
（{int}, {float}, {string} 等）を束縛してステップ実装に渡す。

主な構成:
  - StepDefinition: 1つのステップ式と実装関数の組
  - StepMatch: 照合結果（定義 + 変換済み引数）
  - StepInfo: ステップのメタ情報（CLI の list-steps 用）
  - StepRegistry: given/when/then/step デコレータによる登録と照合

キーワード（Given/When/Then）は照合に含めない。ステップ文は
プレースホルダーの型も含めて全体一致しなければならない。
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from cucumber_expressions.expression import CucumberExpression
from cucumber_expressions.parameter_type_registry import ParameterTypeRegistry

from ..errors import AmbiguousStepError, UndefinedStepError

if TYPE_CHECKING:
    from .context import StepContext

logger = logging.getLogger(__name__)

StepFunction = Callable[..., Awaitable[None]]


# ---------------------------------------------------------------------------
# ステップメタ情報
# ---------------------------------------------------------------------------

@dataclass
class StepInfo:
    """ステップのメタ情報。

    list_all() で返される各ステップの説明情報。
    CLI の list-steps コマンドで一覧表示に使用する。

    Attributes:
        name: ステップ式（.feature ファイルに書く文）
        description: ステップの説明文
        category: キーワード種別（Given, When, Then, Step）
    """

    name: str
    description: str
    category: str


# ---------------------------------------------------------------------------
# ステップ定義
# ---------------------------------------------------------------------------

@dataclass
class StepDefinition:
    """ステップ式と実装関数の組。

    Attributes:
        expression: Cucumber Expression 文字列
        func: 実装関数。async def func(ctx, *args) の形
        keyword: 登録時のキーワード（表示用）
        timeout_ms: ステップ固有のタイムアウト。None の場合は設定値を使用
    """

    expression: str
    func: StepFunction
    keyword: str = "Step"
    timeout_ms: Optional[int] = None
    _compiled: CucumberExpression = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not inspect.iscoroutinefunction(self.func):
            raise TypeError(f"ステップ実装はコルーチン関数である必要があります: {self.func.__name__}")
        self._compiled = CucumberExpression(self.expression, ParameterTypeRegistry())

    def match(self, text: str) -> Optional[list[Any]]:
        """ステップ文に一致すれば変換済み引数のリストを返す。不一致なら None。"""
        arguments = self._compiled.match(text)
        if arguments is None:
            return None
        return [argument.value for argument in arguments]

    @property
    def description(self) -> str:
        doc = inspect.getdoc(self.func) or ""
        return doc.splitlines()[0] if doc else ""

    @property
    def location(self) -> str:
        code = self.func.__code__
        return f"{self.func.__module__}:{code.co_firstlineno}"

    async def run(self, context: StepContext, args: list[Any]) -> None:
        await self.func(context, *args)


@dataclass
class StepMatch:
    """照合結果。"""

    definition: StepDefinition
    args: list[Any]

    async def run(self, context: StepContext) -> None:
        await self.definition.run(context, self.args)


# ---------------------------------------------------------------------------
# StepRegistry 本体
# ---------------------------------------------------------------------------

class StepRegistry:
    """ステップ定義の登録・照合・一覧を管理するレジストリ。

    使用例::

        steps = StepRegistry()

        @steps.given("the cart contains {int} of item {int}")
        async def cart_contains(ctx, quantity, item_id):
            ...

        match = steps.match("the cart contains 2 of item 1")
        await match.run(ctx)
    """

    def __init__(self) -> None:
        """空のレジストリを初期化する。"""
        self._definitions: dict[str, StepDefinition] = {}

    # ----- 登録 -----

    def add(self, definition: StepDefinition) -> None:
        """ステップ定義を登録する。

        同じ式が既に登録されている場合は上書きする（警告を出力）。
        """
        existing = self._definitions.get(definition.expression)
        if existing is not None and existing.func is not definition.func:
            logger.warning(
                "ステップ '%s' の定義を上書きします（既存: %s → 新規: %s）",
                definition.expression, existing.location, definition.location,
            )
        self._definitions[definition.expression] = definition
        logger.debug("ステップ '%s' を登録しました: %s", definition.expression, definition.location)

    def include(self, other: StepRegistry) -> None:
        """他のレジストリの全定義を取り込む。"""
        for definition in other._definitions.values():
            self.add(definition)

    def _decorator(
        self, keyword: str, expression: str, timeout: Optional[int],
    ) -> Callable[[StepFunction], StepFunction]:
        def decorator(func: StepFunction) -> StepFunction:
            self.add(StepDefinition(expression, func, keyword=keyword, timeout_ms=timeout))
            return func

        return decorator

    def given(self, expression: str, *, timeout: Optional[int] = None):
        return self._decorator("Given", expression, timeout)

    def when(self, expression: str, *, timeout: Optional[int] = None):
        return self._decorator("When", expression, timeout)

    def then(self, expression: str, *, timeout: Optional[int] = None):
        return self._decorator("Then", expression, timeout)

    def step(self, expression: str, *, timeout: Optional[int] = None):
        return self._decorator("Step", expression, timeout)

    # ----- 照合 -----

    def match(self, text: str) -> StepMatch:
        """ステップ文に一致する定義を1つ返す。

        Args:
            text: キーワードを除いたステップ文

        Returns:
            一致した定義と変換済み引数

        Raises:
            UndefinedStepError: 一致する定義がない場合
            AmbiguousStepError: 複数の定義が一致した場合
        """
        matches = []
        for definition in self._definitions.values():
            args = definition.match(text)
            if args is not None:
                matches.append(StepMatch(definition, args))

        if not matches:
            raise UndefinedStepError(f"ステップ定義が見つかりません: '{text}'")
        if len(matches) > 1:
            candidates = ", ".join(f"'{m.definition.expression}'" for m in matches)
            raise AmbiguousStepError(f"ステップ '{text}' に複数の定義が一致しました: [{candidates}]")
        return matches[0]

    def has(self, text: str) -> bool:
        """ステップ文に一致する定義がちょうど1つあるかを返す。"""
        try:
            self.match(text)
        except (UndefinedStepError, AmbiguousStepError):
            return False
        return True

    # ----- 一覧 -----

    def list_all(self) -> list[StepInfo]:
        """登録済み全ステップのメタ情報を式の順でソートして返す。"""
        return sorted(
            (
                StepInfo(name=d.expression, description=d.description, category=d.keyword)
                for d in self._definitions.values()
            ),
            key=lambda s: s.name,
        )

    @property
    def names(self) -> list[str]:
        return sorted(self._definitions.keys())

    def __len__(self) -> int:
        return len(self._definitions)
