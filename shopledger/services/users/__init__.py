from .base import UserStore, hash_password, hash_password_async, verify_password, verify_password_async
from .memory import MemoryUserStore
from .sql import SqlUserStore

__all__ = [
    "UserStore",
    "MemoryUserStore",
    "SqlUserStore",
    "hash_password",
    "hash_password_async",
    "verify_password",
    "verify_password_async",
]
