"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

cartcheck コマンドとして以下のサブコマンドを提供する:
  - init: プロジェクト雛形生成
  - run: フィーチャー（シナリオ）実行
  - validate: .feature ファイルの構文検証
  - report: 既存の結果からのレポート再生成・集計表示
  - list-steps: 全ステップ一覧

run の終了コードは、いずれかのシナリオが失敗した場合のみ 1 となる。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s - %(message)s"

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "cartcheck — ストアフロントのカート操作 E2E 検証スイート\n\n"
        "基本の流れ:\n"
        "  1. cartcheck init              雛形と設定ファイルを生成\n"
        "  2. cartcheck run features/     シナリオを実行\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG レベルのログを出力する"),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


# ---------------------------------------------------------------------------
# init コマンド
# ---------------------------------------------------------------------------

_CONFIG_TEMPLATE = """\
# cartcheck 実行設定
# CLI 引数 > 環境変数（CARTCHECK_*）> このファイル の順で優先される
base_url: http://localhost:3000
db_path: app-under-test/shop.db
browser: chromium
headed: false
workers: 1
artifacts_dir: artifacts
timeouts:
  page_load: 10000
  short_wait: 5000
  poll_interval: 100
  step: 30000
checks:
  accessibility:
    mode: soft
    debt_label: MISSING-LANG-ATTRIBUTE
"""

_FEATURE_TEMPLATE = """\
Feature: Add to cart

  Background:
    Given the cart is empty

  Scenario: Add one item from the home page
    Given I am on the home page
    When I add an item to the cart
    And I navigate to the cart
    Then I should see 1 item in the cart list
    And the database should show 1 item in the cart
"""


@app.command()
def init(
    project_dir: Path = typer.Argument(
        Path("."), help="プロジェクトディレクトリ（デフォルト: カレント）",
    ),
) -> None:
    """プロジェクト雛形（ディレクトリ構造と設定テンプレート）を生成する。"""
    try:
        for d in ("features", "artifacts"):
            (project_dir / d).mkdir(parents=True, exist_ok=True)

        config_path = project_dir / "cartcheck.yaml"
        if not config_path.exists():
            config_path.write_text(_CONFIG_TEMPLATE, encoding="utf-8")

        feature_path = project_dir / "features" / "cart.feature"
        if not feature_path.exists():
            feature_path.write_text(_FEATURE_TEMPLATE, encoding="utf-8")

        typer.echo(f"プロジェクトを初期化しました: {project_dir.resolve()}")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    path: Path = typer.Argument(Path("features"), help=".feature ファイルまたはディレクトリ"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="シナリオ名（部分一致）で絞り込む"),
    tags: Optional[list[str]] = typer.Option(None, "--tags", "-t", help="タグで絞り込む（複数指定はいずれか一致）"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="テスト対象アプリのベース URL"),
    db_path: Optional[Path] = typer.Option(None, "--db-path", help="SQLite データベースのパス"),
    headed: Optional[bool] = typer.Option(None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 非表示）"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="並列実行ワーカー数"),
    artifacts_dir: Optional[Path] = typer.Option(None, "--artifacts-dir", help="成果物ディレクトリ"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="設定ファイル（cartcheck.yaml）"),
) -> None:
    """フィーチャーのシナリオを実行する。"""
    import asyncio

    from .config import load_config
    from .core.reporting import Reporter
    from .core.runner import ScenarioRunner
    from .dsl.parser import FeatureParser, select
    from .steps import create_full_registry

    try:
        config = load_config(config_file, {
            "base_url": base_url,
            "db_path": str(db_path) if db_path else None,
            "headed": headed,
            "workers": workers,
            "artifacts_dir": artifacts_dir,
        })

        features = FeatureParser().load_path(path)
        scenarios = select(
            (s for f in features for s in f.scenarios), name=name, tags=tags,
        )
        if not scenarios:
            typer.echo("実行対象のシナリオがありません")
            return

        runner = ScenarioRunner(create_full_registry())
        results = asyncio.run(runner.run_all(scenarios, config))

        reporter = Reporter()
        for result in results:
            reporter.emit(result)
        summary_path = reporter.write_summary(results, config.artifacts_dir)

        # 結果を表示
        for result in results:
            mark = "✓" if result.status == "passed" else "✗"
            typer.echo(f"{mark} {result.title} ({result.duration_ms:.0f}ms)")
            for step in result.steps:
                if step.status == "failed":
                    typer.echo(f"    {step.name}: {step.error}")
            for key, value in result.metadata.items():
                typer.echo(f"    [{key}] {value}")

        failed = sum(1 for r in results if r.status == "failed")
        typer.echo(
            f"\nシナリオ: {len(results)} (passed={len(results) - failed}, failed={failed})"
        )
        typer.echo(f"サマリー: {summary_path}")

        if failed:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# validate コマンド
# ---------------------------------------------------------------------------

@app.command()
def validate(
    path: Path = typer.Argument(..., help="検証する .feature ファイルまたはディレクトリ"),
) -> None:
    """.feature ファイルの構文検証とステップ定義の照合を行う。"""
    from .dsl.parser import FEATURE_GLOB, FeatureParser
    from .errors import CartcheckError
    from .steps import create_full_registry

    parser = FeatureParser()
    registry = create_full_registry()
    files = sorted(path.rglob(FEATURE_GLOB)) if path.is_dir() else [path]

    has_errors = False
    for feature_file in files:
        errors = [str(e) for e in parser.validate(feature_file)]
        if not errors:
            for scenario in parser.load(feature_file).scenarios:
                for step in scenario.steps:
                    try:
                        registry.match(step.text)
                    except CartcheckError as exc:
                        errors.append(f"{feature_file}:{step.line}: {exc}")

        if errors:
            has_errors = True
            for err in errors:
                typer.echo(f"✗ {err}", err=True)
        else:
            typer.echo(f"✓ {feature_file}: 検証 OK")

    if has_errors or not files:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# report コマンド
# ---------------------------------------------------------------------------

@app.command()
def report(
    artifacts_dir: Path = typer.Argument(..., help="成果物ディレクトリ"),
) -> None:
    """既存の report.json から HTML レポートを再生成し、集計を表示する。"""
    import json

    from .core.reporting import SUMMARY_FILE, Reporter, load_summary

    try:
        report_files = sorted(artifacts_dir.rglob("report.json"))
        summary_exists = (artifacts_dir / SUMMARY_FILE).exists()
        if not report_files and not summary_exists:
            typer.echo(f"エラー: {artifacts_dir} にレポートが見つかりません", err=True)
            raise typer.Exit(code=1)

        reporter = Reporter()
        for report_json_path in report_files:
            with open(report_json_path, "r", encoding="utf-8") as f:
                report_data = json.load(f)
            html_path = reporter.render_html(report_data, report_json_path.parent)
            typer.echo(f"HTML レポートを生成しました: {html_path}")

        if summary_exists:
            summary = load_summary(artifacts_dir)
            typer.echo(
                f"シナリオ: {summary['total']} "
                f"(passed={summary['passed']}, failed={summary['failed']})"
            )
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# list-steps コマンド
# ---------------------------------------------------------------------------

@app.command("list-steps")
def list_steps() -> None:
    """登録済み全ステップの一覧を表示する。"""
    from .steps import create_full_registry

    registry = create_full_registry()
    all_steps = registry.list_all()

    # キーワードごとにグループ化して表示
    categories: dict[str, list] = {}
    for info in all_steps:
        categories.setdefault(info.category, []).append(info)

    for category, steps in sorted(categories.items()):
        typer.echo(f"\n[{category}]")
        for step in steps:
            typer.echo(f"  {step.name:55s} {step.description}")

    typer.echo(f"\n合計: {len(all_steps)} ステップ")
