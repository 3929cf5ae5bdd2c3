# shopledger/models/user.py

from sqlalchemy import Column, Integer, String, DateTime

from ..core.enums import UserRole
from ..core.utils import utcnow
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.STAFF.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
