"""Enums used across the domain."""
from enum import Enum


class BlockKind(str, Enum):
    PERMANENT = "permanent"
    TEMPORARY = "temporary"


class BlockReason(str, Enum):
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    BRUTEFORCE_ATTEMPT = "bruteforce_attempt"
    MANUAL = "manual"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
