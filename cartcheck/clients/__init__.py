"""外部コラボレータのクライアント（カート API・ショップ DB）。"""

from .api import CartApiClient, is_success_status
from .db import CartDatabase

__all__ = ["CartApiClient", "CartDatabase", "is_success_status"]
