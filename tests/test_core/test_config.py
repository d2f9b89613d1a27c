"""
実行設定（load_config / RunConfig）のテスト

設定ファイル・環境変数・CLI 引数の優先順位と、不正な値の SetupError 化を検証する。
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from cartcheck.config import CheckPolicy, RunConfig, Timeouts, load_config
from cartcheck.errors import SetupError

_ENV_KEYS = (
    "CARTCHECK_BASE_URL", "CARTCHECK_DB_PATH", "DB_PATH", "CARTCHECK_HEADED",
    "CARTCHECK_WORKERS", "CARTCHECK_ARTIFACTS_DIR", "CARTCHECK_BROWSER",
)


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    """既定値のテスト。"""

    def test_defaults(self) -> None:
        config = load_config()
        assert config.base_url is None
        assert config.browser == "chromium"
        assert config.workers == 1
        assert config.headed is False
        assert config.timeouts == Timeouts()
        assert config.check_policy("accessibility").mode == "soft"

    def test_unknown_check_policy_is_default(self) -> None:
        assert RunConfig().check_policy("contrast") == CheckPolicy()

    def test_require_base_url(self) -> None:
        with pytest.raises(SetupError, match="CARTCHECK_BASE_URL"):
            RunConfig().require_base_url()
        assert RunConfig(base_url="http://shop.test").require_base_url() == "http://shop.test"

    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            RunConfig().workers = 3  # type: ignore[misc]


class TestLoadConfig:
    """load_config の優先順位のテスト。"""

    def test_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "custom.yaml", (
            "base_url: http://localhost:3000\n"
            "workers: 2\n"
            "timeouts:\n"
            "  short_wait: 2000\n"
            "checks:\n"
            "  accessibility:\n"
            "    mode: strict\n"
        ))
        config = load_config(path)
        assert config.base_url == "http://localhost:3000"
        assert config.workers == 2
        assert config.timeouts.short_wait == 2000
        assert config.timeouts.page_load == 10_000
        assert config.check_policy("accessibility").mode == "strict"

    def test_default_file_in_cwd(self, tmp_path: Path) -> None:
        _write(tmp_path / "cartcheck.yaml", "db_path: shop.db\n")
        assert load_config().db_path == "shop.db"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path / "c.yaml", "base_url: http://file\nheaded: false\n")
        monkeypatch.setenv("CARTCHECK_BASE_URL", "http://env")
        monkeypatch.setenv("CARTCHECK_HEADED", "true")
        monkeypatch.setenv("CARTCHECK_WORKERS", "4")
        config = load_config(path)
        assert config.base_url == "http://env"
        assert config.headed is True
        assert config.workers == 4

    def test_db_path_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_PATH", "legacy.db")
        assert load_config().db_path == "legacy.db"
        monkeypatch.setenv("CARTCHECK_DB_PATH", "new.db")
        assert load_config().db_path == "new.db"

    def test_invalid_workers_env_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CARTCHECK_WORKERS", "many")
        assert load_config().workers == 1

    def test_overrides_beat_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """CLI 引数は環境変数より優先され、None の項目は無視されること。"""
        monkeypatch.setenv("CARTCHECK_BASE_URL", "http://env")
        monkeypatch.setenv("CARTCHECK_BROWSER", "firefox")
        config = load_config(overrides={"base_url": "http://cli", "browser": None})
        assert config.base_url == "http://cli"
        assert config.browser == "firefox"


class TestInvalidConfig:
    """不正な設定のテスト。"""

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SetupError, match="見つかりません"):
            load_config(tmp_path / "missing.yaml")

    def test_yaml_syntax_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "bad.yaml", "base_url: [unclosed\n")
        with pytest.raises(SetupError, match="YAML"):
            load_config(path)

    def test_top_level_not_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "list.yaml", "- a\n- b\n")
        with pytest.raises(SetupError, match="マッピング"):
            load_config(path)

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "c.yaml", "browser: netscape\n")
        with pytest.raises(SetupError, match="検証に失敗"):
            load_config(path)

    def test_workers_must_be_positive(self) -> None:
        with pytest.raises(SetupError):
            load_config(overrides={"workers": 0})

    @pytest.mark.parametrize("text", [
        "timeouts:\n  poll_interval: 0\n",
        "timeouts:\n  short_wait: -1\n",
        "timeouts:\n  step: 0\n",
    ])
    def test_invalid_timeouts(self, tmp_path: Path, text: str) -> None:
        """待機に使えないタイムアウト値は読み込み時に SetupError になること。"""
        path = _write(tmp_path / "c.yaml", text)
        with pytest.raises(SetupError, match="検証に失敗"):
            load_config(path)


    def test_empty_file(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "empty.yaml", "")
        assert load_config(path) == RunConfig()
