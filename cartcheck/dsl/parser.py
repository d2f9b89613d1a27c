"""
フィーチャーパーサー — Gherkin .feature ファイルの読み込み・検証

gherkin-official のパーサーで AST を得て、ランナーが実行する
Scenario 列に正規化する。

主な機能:
  - load / load_dir: .feature ファイルの読み込み
  - Background の各シナリオへの前置（Rule 内 Background を含む）
  - Scenario Outline の Examples 行ごとの展開（<name> 置換）
  - validate: 行番号付きのエラー一覧
  - select: シナリオ名・タグによる絞り込み
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

from gherkin.errors import CompositeParserException, ParserError
from gherkin.parser import Parser

from ..errors import FeatureParseError
from .schema import Feature, Scenario, Step

logger = logging.getLogger(__name__)

FEATURE_GLOB = "*.feature"
_PLACEHOLDER = re.compile(r"<([^<>]+)>")


# ---------------------------------------------------------------------------
# バリデーションエラー表現
# ---------------------------------------------------------------------------

@dataclass
class FeatureValidationError:
    """.feature ファイルの検証で検出されたエラー。

    Attributes:
        message: エラーメッセージ
        path: 対象ファイル
        line: 行番号（取得可能な場合）
    """

    message: str
    path: Optional[Path] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        where = str(self.path) if self.path else ""
        if self.line is not None:
            where = f"{where}:{self.line}"
        return f"{where}: {self.message}" if where else self.message


def _error_line(error: Exception) -> Optional[int]:
    location = getattr(error, "location", None)
    if isinstance(location, dict):
        return location.get("line")
    return None


# ---------------------------------------------------------------------------
# FeatureParser 本体
# ---------------------------------------------------------------------------

class FeatureParser:
    """Gherkin .feature ファイルを Feature モデルに変換するパーサー。"""

    def __init__(self) -> None:
        self._parser = Parser()

    # ----- load -----

    def load(self, path: Path) -> Feature:
        """.feature ファイルを読み込み Feature に変換する。

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            FeatureParseError: Gherkin 構文エラー、またはフィーチャーが空の場合
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f".feature ファイルが見つかりません: {path}")

        text = path.read_text(encoding="utf-8")
        return self.parse(text, path)

    def parse(self, text: str, source: Optional[Path] = None) -> Feature:
        """Gherkin テキストを Feature に変換する。"""
        try:
            document = self._parser.parse(text)
        except CompositeParserException as exc:
            line = _error_line(exc.errors[0]) if exc.errors else None
            raise FeatureParseError(f"Gherkin 構文エラー: {exc}", line=line) from exc
        except ParserError as exc:
            raise FeatureParseError(f"Gherkin 構文エラー: {exc}", line=_error_line(exc)) from exc

        node = document.get("feature")
        if not node:
            raise FeatureParseError(f"Feature が定義されていません: {source or '<text>'}")

        feature_tags = _tag_names(node)
        scenarios: list[Scenario] = []
        background: list[Step] = []

        for child in node.get("children", []):
            if "background" in child:
                background = _steps(child["background"])
            elif "scenario" in child:
                scenarios.extend(self._expand(
                    child["scenario"], node["name"], feature_tags, background, source,
                ))
            elif "rule" in child:
                scenarios.extend(self._rule(child["rule"], node["name"], feature_tags, background, source))

        logger.debug("フィーチャーを読み込みました: %s（%d シナリオ）", node["name"], len(scenarios))
        return Feature(
            name=node["name"],
            description=(node.get("description") or "").strip(),
            tags=feature_tags,
            scenarios=scenarios,
            source=source,
        )

    def load_dir(self, directory: Path) -> list[Feature]:
        """ディレクトリ配下の .feature ファイルを名前順に全て読み込む。"""
        return [self.load(p) for p in sorted(Path(directory).rglob(FEATURE_GLOB))]

    def load_path(self, path: Path) -> list[Feature]:
        """ファイルまたはディレクトリを読み込む。"""
        path = Path(path)
        if path.is_dir():
            return self.load_dir(path)
        return [self.load(path)]

    # ----- validate -----

    def validate(self, path: Path) -> list[FeatureValidationError]:
        """.feature ファイルを検証し、エラーのリストを返す（無ければ空）。"""
        path = Path(path)
        if not path.exists():
            return [FeatureValidationError(".feature ファイルが見つかりません", path)]

        try:
            document = self._parser.parse(path.read_text(encoding="utf-8"))
        except CompositeParserException as exc:
            return [
                FeatureValidationError(str(err), path, _error_line(err)) for err in exc.errors
            ]
        except ParserError as exc:
            return [FeatureValidationError(str(exc), path, _error_line(exc))]

        if not document.get("feature"):
            return [FeatureValidationError("Feature が定義されていません", path)]

        errors: list[FeatureValidationError] = []
        for scenario in self.parse(path.read_text(encoding="utf-8"), path).scenarios:
            if not scenario.steps:
                errors.append(FeatureValidationError(
                    f"シナリオ '{scenario.name}' にステップがありません", path, scenario.line,
                ))
            for step in scenario.steps:
                unresolved = _PLACEHOLDER.findall(step.text)
                if unresolved and scenario.example is not None:
                    errors.append(FeatureValidationError(
                        f"Examples に無いプレースホルダーです: {', '.join(unresolved)}", path, step.line,
                    ))
        return errors

    # ----- 展開 -----

    def _rule(
        self,
        rule: dict[str, Any],
        feature_name: str,
        feature_tags: list[str],
        background: list[Step],
        source: Optional[Path],
    ) -> list[Scenario]:
        tags = feature_tags + _tag_names(rule)
        rule_background = list(background)
        scenarios: list[Scenario] = []
        for child in rule.get("children", []):
            if "background" in child:
                rule_background = background + _steps(child["background"])
            elif "scenario" in child:
                scenarios.extend(self._expand(
                    child["scenario"], feature_name, tags, rule_background, source,
                ))
        return scenarios

    def _expand(
        self,
        node: dict[str, Any],
        feature_name: str,
        inherited_tags: list[str],
        background: list[Step],
        source: Optional[Path],
    ) -> list[Scenario]:
        """Scenario / Scenario Outline を実行単位の Scenario 列に展開する。"""
        tags = inherited_tags + _tag_names(node)
        steps = _steps(node)
        examples = node.get("examples") or []

        if not examples:
            return [Scenario(
                name=node["name"],
                feature=feature_name,
                tags=tags,
                steps=background + steps,
                line=node["location"]["line"],
                source=source,
            )]

        expanded: list[Scenario] = []
        for block in examples:
            header = block.get("tableHeader")
            if not header:
                continue
            columns = [cell["value"] for cell in header["cells"]]
            block_tags = tags + _tag_names(block)
            for row in block.get("tableBody", []):
                values = dict(zip(columns, (cell["value"] for cell in row["cells"])))
                name = _substitute(node["name"], values)
                if name == node["name"]:
                    name = f"{name} ({len(expanded) + 1})"
                expanded.append(Scenario(
                    name=name,
                    feature=feature_name,
                    tags=block_tags,
                    steps=background + [_substitute_step(s, values) for s in steps],
                    line=row["location"]["line"],
                    source=source,
                    example=values,
                ))
        return expanded


# ---------------------------------------------------------------------------
# 選択
# ---------------------------------------------------------------------------

def select(
    scenarios: Iterable[Scenario],
    name: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> list[Scenario]:
    """シナリオ名（部分一致）とタグ（いずれか一致）で絞り込む。"""
    selected = []
    for scenario in scenarios:
        if name and name not in scenario.name:
            continue
        if tags and not scenario.has_any_tag(tags):
            continue
        selected.append(scenario)
    return selected


# ---------------------------------------------------------------------------
# AST ユーティリティ
# ---------------------------------------------------------------------------

def _tag_names(node: dict[str, Any]) -> list[str]:
    return [tag["name"] for tag in node.get("tags", [])]


def _steps(node: dict[str, Any]) -> list[Step]:
    steps = []
    for raw in node.get("steps", []):
        doc_string = raw.get("docString")
        data_table = raw.get("dataTable")
        steps.append(Step(
            keyword=raw["keyword"].strip(),
            text=raw["text"],
            keyword_type=raw.get("keywordType", "Unknown"),
            line=raw["location"]["line"],
            doc_string=doc_string["content"] if doc_string else None,
            data_table=(
                [[cell["value"] for cell in row["cells"]] for row in data_table["rows"]]
                if data_table else None
            ),
        ))
    return steps


def _substitute(text: str, values: dict[str, str]) -> str:
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), text)


def _substitute_step(step: Step, values: dict[str, str]) -> Step:
    return step.model_copy(update={
        "text": _substitute(step.text, values),
        "doc_string": _substitute(step.doc_string, values) if step.doc_string else None,
        "data_table": (
            [[_substitute(cell, values) for cell in row] for row in step.data_table]
            if step.data_table else None
        ),
    })
