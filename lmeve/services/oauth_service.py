"""EVE SSO login and token refresh

Callback chain: code -> token exchange -> SSO verify -> ESI character lookup
-> users upsert. Refresh chain: refresh token -> token exchange -> users
update. The first failing step ends the chain with an ExternalAPIException;
nothing is written to the database before every upstream call succeeded.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

import httpx
from sqlalchemy import update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from lmeve.database.upsert import CoercionError, UpsertSpec, upsert_one
from lmeve.exceptions import DatabaseException, ExternalAPIException
from lmeve.models.user import AuthMethod, User, UserRole
from lmeve.services.esi_client import EsiClient
from lmeve.services.settings_resolver import EsiConfig

logger = logging.getLogger(__name__)

users = User.__table__
# Role, auth method and active flag of an existing user are left alone
USER_UPSERT = UpsertSpec(
    table=users,
    key="username",
    fields=[
        "username", "character_id", "character_name", "corporation_id", "access_token",
        "refresh_token", "token_expiry", "scopes", "auth_method", "role", "is_active", "last_login",
    ],
    update_fields=[
        "character_name", "corporation_id", "access_token", "refresh_token",
        "token_expiry", "scopes", "last_login",
    ],
)

EXPIRY_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class TokenSet:
    """Parsed SSO token response"""

    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime
    token_type: str


def expiry_from(expires_in: Any) -> datetime:
    try:
        seconds = int(expires_in or 0)
    except (TypeError, ValueError):
        seconds = 0
    return datetime.utcnow() + timedelta(seconds=max(seconds, 0))


def _body_text(response: Optional[httpx.Response]) -> Optional[str]:
    return response.text if response is not None else None


def _checked_call(failure: str, call) -> httpx.Response:
    """Run one upstream call; transport errors and non-2xx become ExternalAPIException"""
    try:
        response = call()
    except httpx.HTTPError as e:
        logger.error(f"{failure}: {str(e)}")
        raise ExternalAPIException(failure, {"status": 0, "detail": str(e), "body": None})
    if not 200 <= response.status_code < 300:
        logger.error(f"{failure}: upstream returned {response.status_code}")
        raise ExternalAPIException(
            failure, {"status": response.status_code, "detail": None, "body": _body_text(response)}
        )
    return response


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def parse_token_response(response: httpx.Response) -> TokenSet:
    data = _json_object(response)
    if not data.get("access_token"):
        raise ExternalAPIException("Invalid token response", {"body": response.text})
    return TokenSet(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=expiry_from(data.get("expires_in")),
        token_type=data.get("token_type") or "Bearer",
    )


class OAuthService:
    """Runs the SSO chains for one request"""

    def __init__(self, esi: EsiClient, esi_config: EsiConfig):
        self.esi = esi.with_user_agent(esi_config.user_agent)
        self.config = esi_config

    def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        response = _checked_call(
            "Token exchange failed",
            lambda: self.esi.exchange_code(self.config.client_id, self.config.client_secret, code, redirect_uri),
        )
        return parse_token_response(response)

    def verify_identity(self, access_token: str) -> Dict[str, Any]:
        response = _checked_call("SSO verify failed", lambda: self.esi.verify(f"Bearer {access_token}"))
        identity = _json_object(response)
        if not identity.get("CharacterID"):
            raise ExternalAPIException("Invalid verify response", {"body": response.text})
        return identity

    def lookup_character(self, character_id: int, access_token: str) -> Dict[str, Any]:
        response = _checked_call(
            "ESI character lookup failed",
            lambda: self.esi.get_character(character_id, access_token),
        )
        return _json_object(response)

    def login(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        """
        Run the upstream half of the callback chain

        Returns:
            The users row values to upsert plus the token type
        """
        tokens = self.exchange_code(code, redirect_uri)
        identity = self.verify_identity(tokens.access_token)
        character_id = int(identity["CharacterID"])
        character_name = str(identity.get("CharacterName") or "")
        character = self.lookup_character(character_id, tokens.access_token)

        try:
            corporation_id = int(character.get("corporation_id") or 0)
        except (TypeError, ValueError):
            corporation_id = 0

        logger.info(f"SSO login verified for {character_name} ({character_id})")
        return {
            "row": {
                "username": character_name,
                "character_id": character_id,
                "character_name": character_name,
                "corporation_id": corporation_id,
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "token_expiry": tokens.expires_at,
                "scopes": str(identity.get("Scopes") or ""),
                "auth_method": AuthMethod.ESI.value,
                "role": UserRole.CORP_MEMBER.value,
                "is_active": True,
                "last_login": datetime.utcnow(),
            },
            "token_type": tokens.token_type,
        }

    def refresh(self, refresh_token: str) -> TokenSet:
        response = _checked_call(
            "Refresh failed",
            lambda: self.esi.refresh(self.config.client_id, self.config.client_secret, refresh_token),
        )
        tokens = parse_token_response(response)
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        return tokens


def store_login(conn: Connection, row: Dict[str, Any]) -> None:
    """Insert or update the SSO user keyed by username"""
    try:
        upsert_one(conn, USER_UPSERT, row)
    except (CoercionError, SQLAlchemyError) as e:
        logger.error(f"Storing SSO login for {row.get('username')} failed: {str(e)}")
        raise DatabaseException("DB execute failed", {"detail": str(e).split("\n")[0]})


def store_refreshed_tokens(conn: Connection, character_id: int, tokens: TokenSet) -> None:
    """Replace the stored tokens of a character"""
    try:
        conn.execute(
            update(users)
            .where(users.c.character_id == character_id)
            .values(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                token_expiry=tokens.expires_at,
                last_login=datetime.utcnow(),
            )
        )
        conn.commit()
    except SQLAlchemyError as e:
        conn.rollback()
        logger.error(f"Storing refreshed tokens for character {character_id} failed: {str(e)}")
        raise DatabaseException("DB execute failed", {"detail": str(e).split("\n")[0]})
