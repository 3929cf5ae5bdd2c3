from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from shopledger.core.enums import UserRole
from shopledger.database import session_scope
from shopledger.models.user import User
from shopledger.services.users.base import UserRead, UserStore, hash_password_async, verify_password_async


def to_read(row: User) -> UserRead:
    return UserRead(id=row.id, email=row.email, name=row.name, role=row.role, created_at=row.created_at)


class SqlUserStore(UserStore):
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _row_by_email(self, session, email: str) -> Optional[User]:
        result = await session.execute(select(User).where(User.email == self._normalize_email(email)))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[UserRead]:
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_email(session, email)
            return to_read(row) if row else None

    async def find_by_id(self, user_id: int) -> Optional[UserRead]:
        async with session_scope(self.session_factory) as session:
            row = await session.get(User, user_id)
            return to_read(row) if row else None

    async def create(self, email: str, password: str, name: str,
                     role: UserRole = UserRole.STAFF) -> UserRead:
        password_hash = await hash_password_async(password)
        async with session_scope(self.session_factory) as session:
            row = User(
                email=self._normalize_email(email),
                password_hash=password_hash,
                name=name,
                role=UserRole(role).value,
            )
            session.add(row)
            # IntegrityError on a taken email surfaces as DuplicateKeyError
            await session.commit()
            return to_read(row)

    async def authenticate(self, email: str, password: str) -> Optional[UserRead]:
        async with session_scope(self.session_factory) as session:
            row = await self._row_by_email(session, email)
            if row and await verify_password_async(password, row.password_hash):
                return to_read(row)
            return None
