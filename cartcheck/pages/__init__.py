"""ページモデル群（トップ・カート・チェックアウト）。"""

from .cart import CartPage
from .checkout import CheckoutPage
from .home import HomePage
from .navigation import NavigationHelper

__all__ = ["CartPage", "CheckoutPage", "HomePage", "NavigationHelper"]
