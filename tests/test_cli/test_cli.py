"""
CLI テスト — typer.testing.CliRunner を使用した CLI コマンドのテスト

実際のブラウザは起動せず、run の実行部分は ScenarioRunner.run_all を
モックで差し替える。
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from cartcheck.cli import app
from cartcheck.core.reporting import Reporter
from cartcheck.core.runner import ScenarioResult, StepResult

runner = CliRunner()

FEATURES_DIR = Path(__file__).resolve().parents[2] / "features"

GOOD_FEATURE = """\
Feature: Cart

  Scenario: Add one item
    Given the cart is empty
    And I am on the home page
    When I add an item to the cart
    Then the cart count should be 1
"""


def _result(artifacts_dir: Path, *, failed: bool = False) -> ScenarioResult:
    return ScenarioResult(
        title="Add one item",
        feature="Cart",
        steps=[
            StepResult(index=0, keyword="Given", text="I am on the home page", duration_ms=20.0),
            StepResult(
                index=1, keyword="Then", text="the cart count should be 1",
                status="failed" if failed else "passed",
                error="カート件数が一致しません" if failed else None,
                error_type="StepAssertionError" if failed else None,
            ),
        ],
        duration_ms=120.0,
        artifacts_dir=artifacts_dir,
        metadata={"Known Compliance Debt": "MISSING-LANG-ATTRIBUTE"},
    )


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """カレントを空の一時ディレクトリにし、CARTCHECK_* 環境変数を除去する。"""
    monkeypatch.chdir(tmp_path)
    for key in ("CARTCHECK_BASE_URL", "CARTCHECK_DB_PATH", "DB_PATH", "CARTCHECK_WORKERS",
                "CARTCHECK_HEADED", "CARTCHECK_ARTIFACTS_DIR", "CARTCHECK_BROWSER"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

class TestInit:
    """init コマンドのテスト。"""

    def test_creates_project(self, workdir: Path) -> None:
        result = runner.invoke(app, ["init", str(workdir / "proj")])
        assert result.exit_code == 0, result.output
        assert "初期化しました" in result.output
        assert (workdir / "proj" / "artifacts").is_dir()
        assert (workdir / "proj" / "cartcheck.yaml").exists()
        assert (workdir / "proj" / "features" / "cart.feature").exists()

    def test_keeps_existing_files(self, workdir: Path) -> None:
        (workdir / "cartcheck.yaml").write_text("base_url: http://mine\n", encoding="utf-8")
        result = runner.invoke(app, ["init", str(workdir)])
        assert result.exit_code == 0
        assert (workdir / "cartcheck.yaml").read_text(encoding="utf-8") == "base_url: http://mine\n"

    def test_generated_feature_validates(self, workdir: Path) -> None:
        """生成された雛形 .feature が validate を通ること。"""
        runner.invoke(app, ["init", str(workdir)])
        result = runner.invoke(app, ["validate", str(workdir / "features")])
        assert result.exit_code == 0, result.output


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

class TestValidate:
    """validate コマンドのテスト。"""

    def test_bundled_features(self) -> None:
        result = runner.invoke(app, ["validate", str(FEATURES_DIR)])
        assert result.exit_code == 0, result.output
        assert "検証 OK" in result.output

    def test_good_file(self, workdir: Path) -> None:
        path = workdir / "good.feature"
        path.write_text(GOOD_FEATURE, encoding="utf-8")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 0
        assert f"✓ {path}" in result.output

    def test_syntax_error(self, workdir: Path) -> None:
        path = workdir / "bad.feature"
        path.write_text("Feature: Bad\n  Scenario: a\n    Given x\n  not gherkin\n", encoding="utf-8")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert f"{path}:4:" in result.output

    def test_undefined_step(self, workdir: Path) -> None:
        """ステップ定義に一致しない行が行番号付きで報告されること。"""
        path = workdir / "undefined.feature"
        path.write_text(GOOD_FEATURE.replace("When I add an item", "When I juggle an item"), encoding="utf-8")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert f"{path}:6:" in result.output
        assert "I juggle an item to the cart" in result.output

    def test_empty_directory(self, workdir: Path) -> None:
        result = runner.invoke(app, ["validate", str(workdir)])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# list-steps
# ---------------------------------------------------------------------------

class TestListSteps:
    """list-steps コマンドのテスト。"""

    def test_lists_grouped_steps(self) -> None:
        result = runner.invoke(app, ["list-steps"])
        assert result.exit_code == 0
        assert "[Given]" in result.output
        assert "[Then]" in result.output
        assert "the cart contains {int} of item {int}" in result.output
        assert "合計:" in result.output


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------

class TestRun:
    """run コマンドのテスト。"""

    @pytest.fixture
    def feature_file(self, workdir: Path) -> Path:
        path = workdir / "cart.feature"
        path.write_text(GOOD_FEATURE, encoding="utf-8")
        return path

    def test_no_matching_scenarios(self, feature_file: Path) -> None:
        """絞り込みで対象が無くなった場合は何も実行せず終了コード 0。"""
        with patch("cartcheck.core.runner.ScenarioRunner.run_all", new=AsyncMock()) as run_all:
            result = runner.invoke(app, ["run", str(feature_file), "--name", "nothing like this"])
        assert result.exit_code == 0
        assert "実行対象のシナリオがありません" in result.output
        run_all.assert_not_called()

    def test_passing_run(self, feature_file: Path, workdir: Path) -> None:
        artifacts = workdir / "artifacts"
        run_all = AsyncMock(return_value=[_result(artifacts / "Add_one_item")])
        with patch("cartcheck.core.runner.ScenarioRunner.run_all", new=run_all):
            result = runner.invoke(app, [
                "run", str(feature_file), "--base-url", "http://shop.test",
                "--artifacts-dir", str(artifacts), "--workers", "2",
            ])

        assert result.exit_code == 0, result.output
        assert "✓ Add one item" in result.output
        assert "[Known Compliance Debt] MISSING-LANG-ATTRIBUTE" in result.output
        assert "passed=1, failed=0" in result.output
        assert (artifacts / "summary.json").exists()
        assert (artifacts / "Add_one_item" / "report.json").exists()

        scenarios, config = run_all.call_args.args
        assert [s.name for s in scenarios] == ["Add one item"]
        assert config.base_url == "http://shop.test"
        assert config.workers == 2

    def test_failing_run_exits_one(self, feature_file: Path, workdir: Path) -> None:
        artifacts = workdir / "artifacts"
        run_all = AsyncMock(return_value=[_result(artifacts / "Add_one_item", failed=True)])
        with patch("cartcheck.core.runner.ScenarioRunner.run_all", new=run_all):
            result = runner.invoke(app, ["run", str(feature_file), "--artifacts-dir", str(artifacts)])

        assert result.exit_code == 1
        assert "✗ Add one item" in result.output
        assert "カート件数が一致しません" in result.output

    def test_missing_path(self, workdir: Path) -> None:
        result = runner.invoke(app, ["run", str(workdir / "missing.feature")])
        assert result.exit_code == 1
        assert "エラー" in result.output

    def test_tag_filter(self, workdir: Path) -> None:
        path = workdir / "tagged.feature"
        path.write_text(GOOD_FEATURE.replace("  Scenario:", "  @smoke\n  Scenario:"), encoding="utf-8")
        run_all = AsyncMock(return_value=[])
        with patch("cartcheck.core.runner.ScenarioRunner.run_all", new=run_all):
            runner.invoke(app, ["run", str(path), "--tags", "smoke", "--artifacts-dir", str(workdir / "a")])
        scenarios, _ = run_all.call_args.args
        assert [s.tags for s in scenarios] == [["@smoke"]]


# ---------------------------------------------------------------------------
# report
# ---------------------------------------------------------------------------

class TestReport:
    """report コマンドのテスト。"""

    def test_regenerates_html(self, workdir: Path) -> None:
        artifacts = workdir / "artifacts"
        scenario_dir = artifacts / "Add_one_item"
        reporter = Reporter()
        result_obj = _result(scenario_dir)
        reporter.generate_json(result_obj, scenario_dir)
        reporter.write_summary([result_obj], artifacts)

        result = runner.invoke(app, ["report", str(artifacts)])
        assert result.exit_code == 0, result.output
        assert (scenario_dir / "report.html").exists()
        assert "HTML レポートを生成しました" in result.output
        assert "シナリオ: 1 (passed=1, failed=0)" in result.output

    def test_no_reports(self, workdir: Path) -> None:
        result = runner.invoke(app, ["report", str(workdir)])
        assert result.exit_code == 1
        assert "レポートが見つかりません" in result.output
