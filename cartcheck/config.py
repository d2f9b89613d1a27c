"""
実行設定 — 設定ファイル・環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > 設定ファイル（cartcheck.yaml）> デフォルト値
の優先順位で RunConfig を構築する。RunConfig は不変で、並列実行される
シナリオ間で共有してよい唯一の状態である。

環境変数一覧:
  CARTCHECK_BASE_URL     : テスト対象アプリのベース URL
  CARTCHECK_DB_PATH      : SQLite データベースのパス（未設定時は DB_PATH を参照）
  CARTCHECK_HEADED       : ブラウザ表示モード（true/false）
  CARTCHECK_WORKERS      : 並列実行ワーカー数
  CARTCHECK_ARTIFACTS_DIR: 成果物ディレクトリ
  CARTCHECK_BROWSER      : ブラウザ種別（chromium / firefox / webkit）
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import SetupError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("cartcheck.yaml")

_ENV_BASE_URL = "CARTCHECK_BASE_URL"
_ENV_DB_PATH = "CARTCHECK_DB_PATH"
_ENV_DB_PATH_FALLBACK = "DB_PATH"
_ENV_HEADED = "CARTCHECK_HEADED"
_ENV_WORKERS = "CARTCHECK_WORKERS"
_ENV_ARTIFACTS_DIR = "CARTCHECK_ARTIFACTS_DIR"
_ENV_BROWSER = "CARTCHECK_BROWSER"


# ---------------------------------------------------------------------------
# 設定モデル
# ---------------------------------------------------------------------------

class Timeouts(BaseModel):
    """待機・操作のタイムアウト設定（ミリ秒）。"""

    model_config = ConfigDict(frozen=True)

    page_load: int = Field(default=10_000, ge=0)
    short_wait: int = Field(default=5_000, ge=0)
    poll_interval: int = Field(default=100, gt=0)
    step: int = Field(default=30_000, gt=0)


class CheckPolicy(BaseModel):
    """監査系チェックの判定ポリシー。

    soft の場合、違反を検出してもステップを失敗させず、
    debt_label をメタデータとして記録する（既知の対応待ち事項）。
    strict の場合は違反があればステップを失敗させる。
    """

    model_config = ConfigDict(frozen=True)

    mode: Literal["soft", "strict"] = "soft"
    debt_label: Optional[str] = "MISSING-LANG-ATTRIBUTE"
    tags: tuple[str, ...] = ("wcag2a", "wcag2aa", "wcag21aa", "section508")
    axe_url: str = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.2/axe.min.js"


class RunConfig(BaseModel):
    """シナリオ実行設定。

    Attributes:
        base_url: テスト対象アプリのベース URL
        db_path: SQLite データベースのパス
        headed: ブラウザを表示するか
        browser: 使用するブラウザ種別
        workers: 並列実行するシナリオ数（1 = 逐次実行）
        artifacts_dir: 成果物ベースディレクトリ
        slow_mo: 各 Playwright 操作間の遅延（ミリ秒）
        timeouts: タイムアウト設定
        checks: チェック名 → 判定ポリシー
    """

    model_config = ConfigDict(frozen=True)

    base_url: Optional[str] = None
    db_path: Optional[str] = None
    headed: bool = False
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    workers: int = Field(default=1, ge=1)
    artifacts_dir: Path = Path("artifacts")
    slow_mo: int = 0
    timeouts: Timeouts = Field(default_factory=Timeouts)
    checks: dict[str, CheckPolicy] = Field(
        default_factory=lambda: {"accessibility": CheckPolicy()}
    )

    def require_base_url(self) -> str:
        """base_url を返す。未設定の場合は SetupError を送出する。"""
        if not self.base_url:
            raise SetupError(
                "ベース URL が設定されていません。"
                f"--base-url、{_ENV_BASE_URL}、または cartcheck.yaml の base_url を指定してください"
            )
        return self.base_url

    def check_policy(self, name: str) -> CheckPolicy:
        """チェック名に対応する判定ポリシーを返す。未設定なら既定値。"""
        return self.checks.get(name, CheckPolicy())


# ---------------------------------------------------------------------------
# 読み込み
# ---------------------------------------------------------------------------

def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _load_file(path: Path) -> dict[str, Any]:
    """YAML 設定ファイルを辞書として読み込む。"""
    yaml = YAML(typ="safe")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.load(f)
    except YAMLError as exc:
        raise SetupError(f"設定ファイルの YAML 構文エラー: {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SetupError(f"設定ファイルのトップレベルはマッピングである必要があります: {path}")
    return dict(data)


def _load_env() -> dict[str, Any]:
    """環境変数から設定値を収集する。未設定の項目は含めない。"""
    env: dict[str, Any] = {}

    if _ENV_BASE_URL in os.environ:
        env["base_url"] = os.environ[_ENV_BASE_URL]

    db_path = os.environ.get(_ENV_DB_PATH) or os.environ.get(_ENV_DB_PATH_FALLBACK)
    if db_path:
        env["db_path"] = db_path

    if _ENV_HEADED in os.environ:
        env["headed"] = _parse_bool(os.environ[_ENV_HEADED])

    if _ENV_WORKERS in os.environ:
        try:
            env["workers"] = int(os.environ[_ENV_WORKERS])
        except ValueError:
            logger.warning("%s の値が不正です: %s", _ENV_WORKERS, os.environ[_ENV_WORKERS])

    if _ENV_ARTIFACTS_DIR in os.environ:
        env["artifacts_dir"] = os.environ[_ENV_ARTIFACTS_DIR]

    if _ENV_BROWSER in os.environ:
        env["browser"] = os.environ[_ENV_BROWSER]

    return env


def load_config(
    config_file: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> RunConfig:
    """設定ファイル・環境変数・CLI 引数をマージして RunConfig を生成する。

    Args:
        config_file: 設定ファイルのパス。None の場合はカレントの cartcheck.yaml を
            存在すれば使用する
        overrides: CLI 引数由来の上書き値。値が None の項目は無視する

    Returns:
        マージ済みの RunConfig

    Raises:
        SetupError: 設定ファイルが存在しない・不正、または値の検証に失敗した場合
    """
    merged: dict[str, Any] = {}

    if config_file is not None:
        if not config_file.exists():
            raise SetupError(f"設定ファイルが見つかりません: {config_file}")
        merged.update(_load_file(config_file))
        logger.info("設定ファイルを読み込みました: %s", config_file)
    elif DEFAULT_CONFIG_FILE.exists():
        merged.update(_load_file(DEFAULT_CONFIG_FILE))
        logger.info("設定ファイルを読み込みました: %s", DEFAULT_CONFIG_FILE)

    merged.update(_load_env())

    if overrides:
        merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return RunConfig.model_validate(merged)
    except PydanticValidationError as exc:
        raise SetupError(f"設定値の検証に失敗しました: {exc}") from exc
