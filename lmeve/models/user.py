"""User/session model"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, Boolean, DateTime
from datetime import datetime
from lmeve.database.base import Base
import enum


class AuthMethod(str, enum.Enum):
    """How the user signs in"""
    MANUAL = "manual"
    ESI = "esi"


class UserRole(str, enum.Enum):
    """User role enumeration"""
    SUPER_ADMIN = "super_admin"
    CORP_ADMIN = "corp_admin"
    CORP_DIRECTOR = "corp_director"
    CORP_MANAGER = "corp_manager"
    CORP_MEMBER = "corp_member"
    GUEST = "guest"


class User(Base):
    """Local or SSO user, including the character's OAuth tokens"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), unique=True)
    password = Column(String(255), nullable=True)
    character_id = Column(BigInteger, unique=True, nullable=True, index=True)
    character_name = Column(String(255), nullable=True)
    corporation_id = Column(BigInteger, nullable=True, index=True)
    corporation_name = Column(String(255), nullable=True)
    auth_method = Column(String(16), nullable=False, default=AuthMethod.MANUAL.value, index=True)
    role = Column(String(32), nullable=False, default=UserRole.CORP_MEMBER.value, index=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime, nullable=True)
    scopes = Column(Text, nullable=True)
    last_login = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_date = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, auth_method={self.auth_method})>"
