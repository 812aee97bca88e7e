"""Password verification for manual (non-SSO) logins"""

from datetime import datetime
from typing import Any, Dict, Optional
import hashlib
import hmac
import logging

from passlib.context import CryptContext
from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection

from lmeve.exceptions import AccountDisabledException, AuthenticationException
from lmeve.models.user import AuthMethod, User, UserRole

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

users = User.__table__


def is_bcrypt_hash(stored: str) -> bool:
    return stored.startswith(BCRYPT_PREFIXES)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a bcrypt hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password from database

    Returns:
        True if password matches
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password with bcrypt"""
    return pwd_context.hash(password)


def verify_legacy_password(plain_password: str, stored: str) -> bool:
    """Plain-text or unsalted SHA-256 hex passwords from older installs"""
    if hmac.compare_digest(stored.encode(), plain_password.encode()):
        return True
    digest = hashlib.sha256(plain_password.encode()).hexdigest()
    return hmac.compare_digest(stored.encode(), digest.encode())


def serialize_user(row) -> Dict[str, Any]:
    """Public view of a user row (never includes the password)"""
    last_login = row.last_login
    if isinstance(last_login, datetime):
        last_login = last_login.strftime("%Y-%m-%d %H:%M:%S")
    return {
        "id": int(row.id),
        "username": row.username,
        "role": row.role or UserRole.CORP_MEMBER.value,
        "character_id": int(row.character_id) if row.character_id else None,
        "character_name": row.character_name or None,
        "corporation_id": int(row.corporation_id) if row.corporation_id else None,
        "corporation_name": row.corporation_name or None,
        "last_login": last_login or None,
    }


def authenticate_user(conn: Connection, username: str, password: str) -> Dict[str, Any]:
    """
    Authenticate a manual user, upgrading legacy hashes to bcrypt

    Args:
        conn: Connection with the application schema selected
        username: Login name (already trimmed)
        password: Plain text password

    Returns:
        Public user data as it was before this login

    Raises:
        AuthenticationException: Unknown user, no stored password or wrong password
        AccountDisabledException: User exists but is inactive
    """
    row = conn.execute(
        select(
            users.c.id, users.c.username, users.c.password, users.c.role, users.c.is_active,
            users.c.character_id, users.c.character_name, users.c.corporation_id,
            users.c.corporation_name, users.c.last_login,
        ).where(users.c.username == username).limit(1)
    ).first()

    if row is None:
        logger.warning(f"Failed login attempt for unknown username: {username}")
        raise AuthenticationException("Invalid username or password")
    if not row.is_active:
        logger.warning(f"Login attempt for disabled account: {username}")
        raise AccountDisabledException("User account is disabled")

    stored = row.password or ""
    if stored == "":
        raise AuthenticationException("Invalid username or password")

    if is_bcrypt_hash(stored):
        verified = verify_password(password, stored)
    else:
        verified = verify_legacy_password(password, stored)
        if verified:
            conn.execute(
                update(users)
                .where(users.c.id == row.id)
                .values(password=get_password_hash(password), updated_date=datetime.utcnow())
            )
            conn.commit()
            logger.info(f"Upgraded legacy password hash to bcrypt for user {username}")

    if not verified:
        logger.warning(f"Failed login attempt for username: {username}")
        raise AuthenticationException("Invalid username or password")

    conn.execute(update(users).where(users.c.id == row.id).values(last_login=datetime.utcnow()))
    conn.commit()

    return serialize_user(row)


def ensure_admin(conn: Connection, username: str, password: str) -> bool:
    """
    Create a manual super admin unless the username is already taken

    Args:
        conn: Connection with the application schema selected
        username: Login name for the new account
        password: Plain text password, stored as bcrypt

    Returns:
        True if the account was created, False if it already existed
    """
    exists = conn.execute(select(users.c.id).where(users.c.username == username).limit(1)).first()
    if exists is not None:
        logger.info(f"User {username} already exists, not seeding")
        return False

    conn.execute(
        insert(users).values(
            username=username,
            password=get_password_hash(password),
            role=UserRole.SUPER_ADMIN.value,
            auth_method=AuthMethod.MANUAL.value,
            is_active=True,
        )
    )
    conn.commit()
    logger.info(f"Seeded super admin {username}")
    return True
