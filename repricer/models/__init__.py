from .erp_token import ErpToken
from .price_history import PriceHistory
from .execution_log import ExecutionLog
from .platform_sync_log import PlatformSyncLog
from .keepalive_log import KeepAliveLog

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'ErpToken',
    'PriceHistory',
    'ExecutionLog',
    'PlatformSyncLog',
    'KeepAliveLog',
]
