from .client import ErpClient, build_goods_csv
from .token_store import TokenStore

__all__ = ["ErpClient", "TokenStore", "build_goods_csv"]
