"""cartcheck — ストアフロントのカート操作 E2E 検証スイート。"""

__version__ = "0.1.0"
