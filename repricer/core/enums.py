"""
Shared enums and constants used across the application.
"""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Outcome of a daily price-update run"""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class KeepAliveStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SyncStatus(str, Enum):
    """Outcome of one marketplace batch submission"""
    SUCCESS = "success"
    ERROR = "error"


class MetalType(str, Enum):
    GOLD = "gold"
    PLATINUM = "platinum"


class ErrorKind(str, Enum):
    """Classification of an upstream ERP error response"""
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    API = "api"


class ExecutionReason(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
