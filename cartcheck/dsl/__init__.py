# DSL モジュール
# Gherkin .feature ファイルのスキーマ定義とパーサーを提供

from . import schema  # noqa: F401
from . import parser  # noqa: F401
