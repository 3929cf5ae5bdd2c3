"""
User identity store. Session issuance lives outside this service; the
store only holds identities and checks passwords for HTTP Basic auth.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import bcrypt
from pydantic import field_validator

from shopledger.core.enums import UserRole
from shopledger.core.utils import ensure_utc
from shopledger.schemas.base import BaseSchema


class UserRead(BaseSchema):
    id: int
    email: str
    name: str
    role: UserRole
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="after")
    @classmethod
    def _utc_created_at(cls, value):
        return ensure_utc(value)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


async def hash_password_async(password: str) -> str:
    """hash_password on the default executor; bcrypt blocks for the whole cost factor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password, password, password_hash)


class UserStore(ABC):
    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[UserRead]:
        pass

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[UserRead]:
        pass

    @abstractmethod
    async def create(self, email: str, password: str, name: str,
                     role: UserRole = UserRole.STAFF) -> UserRead:
        """Raises DuplicateKeyError if the email is taken."""
        pass

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Optional[UserRead]:
        """The user if the credentials match, else None."""
        pass

    @staticmethod
    def _normalize_email(email: str) -> str:
        return (email or "").strip().lower()
