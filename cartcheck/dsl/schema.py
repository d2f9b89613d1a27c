"""
シナリオスキーマ定義 — Gherkin フィーチャーの実行単位モデル

.feature ファイルをパースした結果を、ランナーが実行できる形に
正規化した Pydantic v2 モデルで表現する。Background は各シナリオの
先頭に展開済み、Scenario Outline は Examples 行ごとに展開済みである。
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

KeywordType = Literal["Context", "Action", "Outcome", "Conjunction", "Unknown"]


# ---------------------------------------------------------------------------
# ステップ
# ---------------------------------------------------------------------------

class Step(BaseModel):
    """シナリオ内の1ステップ。

    キーワード（Given/When/Then/And/But/*）は表示用で、
    ステップ定義との照合には text のみを用いる。
    """

    model_config = ConfigDict(frozen=True)

    keyword: str = Field(..., description="表示用キーワード（末尾空白除去済み）")
    text: str = Field(..., description="キーワードを除いたステップ本文")
    keyword_type: KeywordType = Field(default="Unknown", description="Gherkin のキーワード種別")
    line: Optional[int] = Field(default=None, description=".feature ファイル内の行番号")
    doc_string: Optional[str] = Field(default=None, description="DocString 引数")
    data_table: Optional[list[list[str]]] = Field(default=None, description="DataTable 引数")

    @property
    def display(self) -> str:
        return f"{self.keyword} {self.text}"


# ---------------------------------------------------------------------------
# シナリオ・フィーチャー
# ---------------------------------------------------------------------------

class Scenario(BaseModel):
    """実行単位のシナリオ。"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="シナリオ名（Outline は展開後の名前）")
    feature: str = Field(default="", description="所属フィーチャー名")
    tags: list[str] = Field(default_factory=list, description="継承分を含むタグ（@ 付き）")
    steps: list[Step] = Field(default_factory=list)
    line: Optional[int] = Field(default=None)
    source: Optional[Path] = Field(default=None, description="読み込み元 .feature ファイル")
    example: Optional[dict[str, str]] = Field(
        default=None, description="Outline の展開元 Examples 行",
    )

    def has_any_tag(self, tags: list[str]) -> bool:
        wanted = {t if t.startswith("@") else f"@{t}" for t in tags}
        return bool(wanted.intersection(self.tags))


class Feature(BaseModel):
    """1つの .feature ファイル。"""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    scenarios: list[Scenario] = Field(default_factory=list)
    source: Optional[Path] = None
