"""
Runner — シナリオ実行エンジン

Gherkin シナリオのステップを StepRegistry で束縛し、シナリオごとに
確保したセッション上で順番に実行する。

主な機能:
  - StepResult / ScenarioResult: 実行結果データクラス
  - ScenarioRunner.run: 1シナリオの実行（セッション確保 → ステップ実行 → 解放）
  - ScenarioRunner.run_all: asyncio.Semaphore による並列実行
  - ScenarioRunner.execute_steps: 確保済みコンテキスト上でのステップ実行

最初に失敗したステップ以降は実行せず skipped として記録する。
セッション確保の失敗は "Before scenario" フックの失敗として記録する。
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncContextManager, Callable, Literal, Optional

from ..errors import WaitTimeoutError
from ..steps.context import StepContext
from .events import ActionEvent
from .models import Attachment
from .session import BrowserSession

if TYPE_CHECKING:
    from ..config import RunConfig
    from ..dsl.schema import Scenario, Step
    from ..steps.registry import StepRegistry

logger = logging.getLogger(__name__)

StepStatus = Literal["passed", "failed", "skipped"]
SessionFactory = Callable[["RunConfig"], AsyncContextManager[Any]]

BEFORE_HOOK = "Before"
AFTER_HOOK = "After"


# ---------------------------------------------------------------------------
# 結果データクラス
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StepResult:
    """単一ステップの実行結果。ステップ終了時に1度だけ生成する。

    Attributes:
        index: ステップのインデックス（0始まり。フックは -1）
        keyword: キーワード（Given / When / Then / And / Before / After）
        text: ステップ本文
        status: 実行結果（passed / failed / skipped）
        duration_ms: 実行時間（ミリ秒）
        error: エラーメッセージ（失敗時のみ）
        error_type: 例外クラス名（失敗時のみ）
        screenshot_path: エラー時スクリーンショットのパス
        events: ステップ中に記録された操作イベント
        attachments: ステップ中に添付された成果物
    """

    index: int
    keyword: str
    text: str
    status: StepStatus = "passed"
    duration_ms: float = 0.0
    error: Optional[str] = None
    error_type: Optional[str] = None
    screenshot_path: Optional[Path] = None
    events: tuple[ActionEvent, ...] = ()
    attachments: tuple[Attachment, ...] = ()

    @property
    def name(self) -> str:
        return f"{self.keyword} {self.text}"


@dataclass
class ScenarioResult:
    """シナリオ全体の実行結果。

    Attributes:
        title: シナリオ名
        feature: フィーチャー名
        tags: タグ
        steps: 各ステップの実行結果リスト（フック結果を含む）
        duration_ms: 全体実行時間（ミリ秒）
        artifacts_dir: 成果物ディレクトリ
        started_at: 実行開始日時
        finished_at: 実行終了日時
        metadata: レポートに出力するメタデータ
    """

    title: str
    feature: str = ""
    tags: list[str] = field(default_factory=list)
    steps: list[StepResult] = field(default_factory=list)
    duration_ms: float = 0.0
    artifacts_dir: Optional[Path] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> Literal["passed", "failed"]:
        """いずれかのステップが失敗していれば failed。"""
        return "failed" if any(s.status == "failed" for s in self.steps) else "passed"

    @property
    def attachments(self) -> list[Attachment]:
        return [a for s in self.steps for a in s.attachments]


# ---------------------------------------------------------------------------
# ScenarioRunner 本体
# ---------------------------------------------------------------------------

class ScenarioRunner:
    """シナリオ実行エンジン。

    使用例::

        runner = ScenarioRunner(create_full_registry())
        result = await runner.run(scenario, config)
    """

    def __init__(
        self,
        registry: StepRegistry,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        """ScenarioRunner を初期化する。

        Args:
            registry: ステップ定義のレジストリ
            session_factory: RunConfig を受け取り、elements / api / db を持つ
                セッションを返す非同期コンテキストマネージャのファクトリ。
                None の場合は BrowserSession
        """
        self._registry = registry
        self._session_factory = session_factory or BrowserSession

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def run(
        self, scenario: Scenario, config: RunConfig, index: Optional[int] = None,
    ) -> ScenarioResult:
        """シナリオを実行し、結果を返す。

        セッションとコンテキストをシナリオ専用に生成し、終了時に解放する。
        セッションの確保に失敗した場合は Before フックの失敗として記録し、
        全ステップを skipped にする。

        Args:
            scenario: 実行するシナリオ
            config: 実行設定
            index: run_all 内での通し番号（成果物ディレクトリ名に使用）
        """
        result = ScenarioResult(
            title=scenario.name,
            feature=scenario.feature,
            tags=list(scenario.tags),
            started_at=datetime.now(),
        )
        artifacts_dir = config.artifacts_dir / artifacts_dir_name(scenario, index)
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        result.artifacts_dir = artifacts_dir

        start_time = time.perf_counter()
        logger.info("シナリオ開始: %s", scenario.name)

        steps_started = False
        hook_start = time.perf_counter()
        try:
            async with self._session_factory(config) as session:
                context = StepContext.create(config, session.elements, session.api, session.db)
                steps_started = True
                result.steps.extend(await self.execute_steps(scenario, context, artifacts_dir))
                result.metadata.update(context.metadata)
                hook_start = time.perf_counter()
        except Exception as exc:
            hook = AFTER_HOOK if steps_started else BEFORE_HOOK
            logger.error("シナリオ '%s' の %s フックでエラー: %s", scenario.name, hook, exc)
            result.steps.append(_hook_failure(hook, exc, hook_start))
            if not steps_started:
                result.steps.extend(_skipped(i, step) for i, step in enumerate(scenario.steps))

        result.finished_at = datetime.now()
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info("シナリオ終了: %s (%s)", scenario.name, result.status)
        return result

    async def run_all(self, scenarios: list[Scenario], config: RunConfig) -> list[ScenarioResult]:
        """複数シナリオを並列実行する。

        asyncio.Semaphore で同時実行数を config.workers に制限する。
        各シナリオは専用のセッションで実行し、結果は入力順で返す。
        """
        semaphore = asyncio.Semaphore(config.workers)

        async def _run_with_semaphore(index: int, scenario: Scenario) -> ScenarioResult:
            async with semaphore:
                return await self.run(scenario, config, index)

        return list(await asyncio.gather(
            *(_run_with_semaphore(i, s) for i, s in enumerate(scenarios))
        ))

    async def execute_steps(
        self,
        scenario: Scenario,
        context: StepContext,
        artifacts_dir: Optional[Path] = None,
    ) -> list[StepResult]:
        """ステップを順に実行する。最初の失敗以降は skipped として記録する。"""
        results: list[StepResult] = []
        failed = False
        for index, step in enumerate(scenario.steps):
            if failed:
                results.append(_skipped(index, step))
                continue
            step_result = await self._execute_step(index, step, context, artifacts_dir)
            results.append(step_result)
            failed = step_result.status == "failed"
        return results

    # -------------------------------------------------------------------
    # ステップ実行
    # -------------------------------------------------------------------

    async def _execute_step(
        self,
        index: int,
        step: Step,
        context: StepContext,
        artifacts_dir: Optional[Path],
    ) -> StepResult:
        """単一ステップを実行する。

        ステップ定義の照合失敗（未定義・曖昧）もステップの失敗として扱う。
        エラー発生時はスクリーンショットを保存する（失敗しても続行）。
        """
        event_mark = context.events.mark()
        attachment_mark = len(context.attachments)
        start_time = time.perf_counter()
        error: Optional[BaseException] = None
        screenshot_path: Optional[Path] = None

        try:
            match = self._registry.match(step.text)
            timeout = match.definition.timeout_ms or context.config.timeouts.step
            await _run_with_timeout(match.run(context), timeout, step.text)
        except Exception as exc:
            error = exc
            logger.error("ステップ '%s' (index=%d) でエラー: %s", step.text, index, exc)
            if artifacts_dir is not None:
                screenshot_path = await _error_screenshot(context, artifacts_dir, index)

        return StepResult(
            index=index,
            keyword=step.keyword,
            text=step.text,
            status="failed" if error is not None else "passed",
            duration_ms=(time.perf_counter() - start_time) * 1000,
            error=str(error) if error is not None else None,
            error_type=type(error).__name__ if error is not None else None,
            screenshot_path=screenshot_path,
            events=context.events.since(event_mark),
            attachments=tuple(context.attachments[attachment_mark:]),
        )


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

async def _run_with_timeout(coro: Any, timeout_ms: int, text: str) -> None:
    """ステップ本体をタイムアウト付きで実行する。timeout_ms が 0 以下なら無制限。"""
    if timeout_ms <= 0:
        await coro
        return

    start = time.perf_counter()
    try:
        await asyncio.wait_for(coro, timeout=timeout_ms / 1000.0)
    except WaitTimeoutError:
        raise
    except asyncio.TimeoutError as exc:
        raise WaitTimeoutError(
            f"ステップ '{text}' の完了", timeout_ms, (time.perf_counter() - start) * 1000,
        ) from exc


async def _error_screenshot(context: StepContext, artifacts_dir: Path, index: int) -> Optional[Path]:
    path = artifacts_dir / "screenshots" / f"step{index:03d}_error.png"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        await context.elements.screenshot(str(path))
    except Exception as exc:
        logger.warning("スクリーンショット保存に失敗: %s", exc)
        return None
    return path


def _skipped(index: int, step: Step) -> StepResult:
    return StepResult(index=index, keyword=step.keyword, text=step.text, status="skipped")


def _hook_failure(hook: str, exc: BaseException, start: float) -> StepResult:
    return StepResult(
        index=-1,
        keyword=hook,
        text="scenario",
        status="failed",
        duration_ms=(time.perf_counter() - start) * 1000,
        error=str(exc),
        error_type=type(exc).__name__,
    )


def artifacts_dir_name(scenario: Scenario, index: Optional[int] = None) -> str:
    """シナリオの成果物ディレクトリ名を返す。

    同じフィーチャー内の同名シナリオ（Outline の展開を含む）が衝突しないよう、
    行番号を付ける。行番号が無い場合は run_all での通し番号（1 始まり）を付ける。
    """
    base = sanitize_title(f"{scenario.feature}_{scenario.name}")
    if scenario.line is not None:
        return f"{base}_L{scenario.line}"
    if index is not None:
        return f"{base}_{index + 1}"
    return base


def sanitize_title(title: str) -> str:

    """シナリオタイトルをファイルシステム安全な文字列に変換する。

    英数字・日本語文字・アンダースコア・ハイフン以外をアンダースコアに置換する。
    """
    sanitized = re.sub(r"[^\w\-]", "_", title)
    return sanitized.strip("_")[:100]
