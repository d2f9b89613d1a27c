"""
Reporter — シナリオ実行結果のレポート出力

ScenarioResult を受け取り、ログ行と JSON / HTML / JUnit XML 形式の
レポート、添付ファイルを出力する。

主な機能:
  - emit(): ログ出力と全形式のレポート・添付の書き出し（失敗しても例外を送出しない）
  - generate_json(): JSON レポート（report.json）の生成
  - generate_html() / render_html(): HTML レポート（report.html）の生成・再生成
  - generate_junit_xml(): ステップ単位の JUnit XML（junit.xml）の生成
  - write_summary(): 複数シナリオの集計（summary.json）の生成
"""

from __future__ import annotations

import json
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader

from .models import Attachment
from .runner import ScenarioResult, StepResult

logger = logging.getLogger(__name__)

# テンプレートディレクトリのパス
_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

ATTACHMENTS_DIR = "attachments"
SUMMARY_FILE = "summary.json"

_MIME_EXTENSIONS = {
    "text/plain": "txt",
    "text/html": "html",
    "application/json": "json",
    "image/png": "png",
    "image/jpeg": "jpg",
}

# 添付の一覧: ステップ位置ごとの [{"name", "mime_type", "path"}]
AttachmentIndex = list[list[dict[str, str]]]


class Reporter:
    """シナリオ実行結果のレポート出力クラス。

    emit() はシナリオごとに1回呼び出す。レポート出力の失敗は
    WARNING ログに記録するだけで、テスト結果には影響させない。
    """

    def __init__(self) -> None:
        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            autoescape=True,
        )

    # -------------------------------------------------------------------
    # 一括出力
    # -------------------------------------------------------------------

    def emit(self, result: ScenarioResult, output_dir: Optional[Path] = None) -> dict[str, Path]:
        """ログ出力と全形式のレポート書き出しを行う。

        Args:
            result: シナリオ実行結果
            output_dir: 出力先ディレクトリ。None の場合は result.artifacts_dir

        Returns:
            出力できたファイルの種別 → パス
        """
        self.log_result(result)

        output_dir = output_dir or result.artifacts_dir
        if output_dir is None:
            logger.warning("出力先ディレクトリが未設定のためレポートを出力しません: %s", result.title)
            return {}

        written: dict[str, Path] = {}
        attachments: AttachmentIndex = [[] for _ in result.steps]
        try:
            attachments = self.write_attachments(result, output_dir)
        except Exception as exc:
            logger.warning("添付ファイルの出力に失敗しました: %s", exc)

        generators = {
            "json": lambda: self.generate_json(result, output_dir, attachments),
            "html": lambda: self.generate_html(result, output_dir, attachments),
            "junit": lambda: self.generate_junit_xml(result, output_dir),
        }
        for kind, generate in generators.items():
            try:
                written[kind] = generate()
            except Exception as exc:
                logger.warning("%s レポートの出力に失敗しました: %s", kind, exc)
        return written

    # -------------------------------------------------------------------
    # ログ出力
    # -------------------------------------------------------------------

    def log_result(self, result: ScenarioResult) -> None:
        """ステップごと・操作イベントごとに1行のログを出力する。"""
        logger.info("シナリオ: %s [%s]", result.title, result.status)
        for step in result.steps:
            level = logging.ERROR if step.status == "failed" else logging.INFO
            logger.log(level, "  %-7s %s (%.0fms)", step.status, step.name, step.duration_ms)
            for event in step.events:
                logger.debug(
                    "    %s %s -> %s (%.0fms)",
                    event.action, event.target, event.outcome, event.duration_ms,
                )
            if step.error:
                logger.log(level, "    %s: %s", step.error_type, step.error)
        for key, value in result.metadata.items():
            logger.warning("  %s: %s", key, value)

    # -------------------------------------------------------------------
    # 添付ファイル
    # -------------------------------------------------------------------

    def write_attachments(self, result: ScenarioResult, output_dir: Path) -> AttachmentIndex:
        """ステップの添付を attachments/ 配下に書き出す。"""
        index: AttachmentIndex = []
        for position, step in enumerate(result.steps):
            written = []
            for number, attachment in enumerate(step.attachments):
                path = self._attachment_path(output_dir, position, number, attachment)
                path.parent.mkdir(parents=True, exist_ok=True)
                if isinstance(attachment.content, bytes):
                    path.write_bytes(attachment.content)
                else:
                    path.write_text(attachment.content, encoding="utf-8")
                written.append({
                    "name": attachment.name,
                    "mime_type": attachment.mime_type,
                    "path": path.relative_to(output_dir).as_posix(),
                })
            index.append(written)
        return index

    @staticmethod
    def _attachment_path(output_dir: Path, position: int, number: int, attachment: Attachment) -> Path:
        ext = _MIME_EXTENSIONS.get(attachment.mime_type, "bin")
        stem = re.sub(r"[^\w\-]", "_", attachment.name).strip("_")[:60] or "attachment"
        return output_dir / ATTACHMENTS_DIR / f"step{position:03d}_{number}_{stem}.{ext}"

    # -------------------------------------------------------------------
    # JSON レポート
    # -------------------------------------------------------------------

    def generate_json(
        self,
        result: ScenarioResult,
        output_dir: Path,
        attachments: Optional[AttachmentIndex] = None,
    ) -> Path:
        """JSON レポート（report.json）を生成する。

        Args:
            result: シナリオ実行結果
            output_dir: 出力先ディレクトリ
            attachments: write_attachments() の戻り値

        Returns:
            生成された report.json のパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        report_data = self._build_report_dict(result, attachments)

        output_path = output_dir / "report.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report_data, f, ensure_ascii=False, indent=2)

        logger.info("JSON レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # HTML レポート
    # -------------------------------------------------------------------

    def generate_html(
        self,
        result: ScenarioResult,
        output_dir: Path,
        attachments: Optional[AttachmentIndex] = None,
    ) -> Path:
        """シナリオ結果から report.html を生成する。

        ステップごとの操作イベント・添付・メタデータを1ファイルに収める。
        """
        return self.render_html(self._build_report_dict(result, attachments), output_dir)

    def render_html(self, report_data: dict[str, Any], output_dir: Path) -> Path:
        """レポート用辞書（report.json の内容）から report.html を書き出す。"""
        output_dir.mkdir(parents=True, exist_ok=True)

        template = self._env.get_template("report.html.j2")
        html_content = template.render(report=report_data)

        output_path = output_dir / "report.html"
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(html_content)

        logger.info("HTML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # JUnit XML レポート
    # -------------------------------------------------------------------

    def generate_junit_xml(self, result: ScenarioResult, output_dir: Path) -> Path:
        """シナリオを testsuite、各ステップを testcase とした junit.xml を生成する。

        メタデータ（Known Compliance Debt 等）は testsuite の properties に載せる。
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        testsuites = ET.Element("testsuites")

        summary = self._compute_summary(result.steps)
        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("name", result.title)
        testsuite.set("tests", str(summary["total"]))
        testsuite.set("failures", str(summary["failed"]))
        testsuite.set("skipped", str(summary["skipped"]))
        testsuite.set("time", f"{result.duration_ms / 1000:.3f}")

        if result.metadata:
            properties = ET.SubElement(testsuite, "properties")
            for key, value in result.metadata.items():
                prop = ET.SubElement(properties, "property")
                prop.set("name", key)
                prop.set("value", value)

        for step in result.steps:
            testcase = ET.SubElement(testsuite, "testcase")
            testcase.set("name", step.name)
            testcase.set("classname", f"{result.feature}.{result.title}" if result.feature else result.title)
            testcase.set("time", f"{step.duration_ms / 1000:.3f}")

            if step.status == "failed" and step.error:
                failure = ET.SubElement(testcase, "failure")
                failure.set("message", step.error)
                failure.set("type", step.error_type or "")
                failure.text = step.error

            if step.status == "skipped":
                ET.SubElement(testcase, "skipped")

        tree = ET.ElementTree(testsuites)
        output_path = output_dir / "junit.xml"
        ET.indent(tree, space="  ")
        tree.write(
            str(output_path),
            encoding="unicode",
            xml_declaration=True,
        )

        logger.info("JUnit XML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # 集計
    # -------------------------------------------------------------------

    def write_summary(self, results: list[ScenarioResult], output_dir: Path) -> Path:
        """複数シナリオの結果を summary.json に集計する。

        Returns:
            生成された summary.json のパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        scenarios = [
            {
                "title": r.title,
                "feature": r.feature,
                "status": r.status,
                "duration_ms": r.duration_ms,
                "artifacts_dir": r.artifacts_dir.as_posix() if r.artifacts_dir else None,
                "metadata": dict(r.metadata),
            }
            for r in results
        ]
        summary = {
            "total": len(results),
            "passed": sum(1 for r in results if r.status == "passed"),
            "failed": sum(1 for r in results if r.status == "failed"),
            "scenarios": scenarios,
        }

        output_path = output_dir / SUMMARY_FILE
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(summary, f, ensure_ascii=False, indent=2)

        logger.info("サマリーを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def _build_report_dict(
        self, result: ScenarioResult, attachments: Optional[AttachmentIndex] = None,
    ) -> dict[str, Any]:
        """ScenarioResult をレポート用辞書に変換する。"""
        steps_data = []
        for position, step in enumerate(result.steps):
            steps_data.append({
                "index": step.index,
                "keyword": step.keyword,
                "text": step.text,
                "name": step.name,
                "status": step.status,
                "duration_ms": step.duration_ms,
                "error": step.error,
                "error_type": step.error_type,
                "screenshot_path": self._to_relative_path(step.screenshot_path, result.artifacts_dir),
                "events": [event.to_dict() for event in step.events],
                "attachments": attachments[position] if attachments else [],
            })

        return {
            "title": result.title,
            "feature": result.feature,
            "tags": list(result.tags),
            "status": result.status,
            "duration_ms": result.duration_ms,
            "started_at": result.started_at.isoformat() if result.started_at else None,
            "finished_at": result.finished_at.isoformat() if result.finished_at else None,
            "metadata": dict(result.metadata),
            "steps": steps_data,
            "summary": self._compute_summary(result.steps),
        }

    def _compute_summary(self, steps: list[StepResult]) -> dict[str, int]:
        """ステップリストから total, passed, failed, skipped を計算する。"""
        return {
            "total": len(steps),
            "passed": sum(1 for s in steps if s.status == "passed"),
            "failed": sum(1 for s in steps if s.status == "failed"),
            "skipped": sum(1 for s in steps if s.status == "skipped"),
        }

    def _to_relative_path(self, path: Optional[Path], artifacts_dir: Optional[Path]) -> Optional[str]:
        """パスを artifacts_dir からの相対パス（POSIX 形式）に変換する。"""
        if path is None:
            return None

        if artifacts_dir is not None:
            try:
                return path.relative_to(artifacts_dir).as_posix()
            except ValueError:
                pass

        return path.as_posix()


def load_summary(output_dir: Path) -> dict[str, Any]:
    """write_summary() が出力した summary.json を読み込む。

    Raises:
        FileNotFoundError: summary.json が存在しない場合
    """
    with open(output_dir / SUMMARY_FILE, "r", encoding="utf-8") as f:
        return json.load(f)
