import itertools
from typing import Dict, Optional, Tuple

from shopledger.core.enums import UserRole
from shopledger.core.exceptions import DuplicateKeyError
from shopledger.core.utils import utcnow
from shopledger.services.users.base import (
    UserRead,
    UserStore,
    hash_password,
    hash_password_async,
    verify_password_async,
)


class MemoryUserStore(UserStore):
    def __init__(self):
        # email -> (user, password hash)
        self._users: Dict[str, Tuple[UserRead, str]] = {}
        self._ids = itertools.count(1)

    def clear(self) -> None:
        self._users.clear()
        self._ids = itertools.count(1)

    async def find_by_email(self, email: str) -> Optional[UserRead]:
        entry = self._users.get(self._normalize_email(email))
        return entry[0] if entry else None

    async def find_by_id(self, user_id: int) -> Optional[UserRead]:
        for user, _ in self._users.values():
            if user.id == user_id:
                return user
        return None

    async def create(self, email: str, password: str, name: str,
                     role: UserRole = UserRole.STAFF) -> UserRead:
        self._check_free(email)
        return self._store(email, await hash_password_async(password), name, role)

    def add_user(self, email: str, password: str, name: str,
                 role: UserRole = UserRole.STAFF) -> UserRead:
        """Synchronous create, for seeding before the event loop runs."""
        self._check_free(email)
        return self._store(email, hash_password(password), name, role)

    def _check_free(self, email: str) -> None:
        email = self._normalize_email(email)
        if email in self._users:
            raise DuplicateKeyError(f"User {email} already exists")

    def _store(self, email: str, password_hash: str, name: str, role: UserRole) -> UserRead:
        email = self._normalize_email(email)
        # Re-checked: another create may have finished while this one was hashing
        self._check_free(email)
        user = UserRead(id=next(self._ids), email=email, name=name, role=role, created_at=utcnow())
        self._users[email] = (user, password_hash)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[UserRead]:
        entry = self._users.get(self._normalize_email(email))
        if entry and await verify_password_async(password, entry[1]):
            return entry[0]
        return None
