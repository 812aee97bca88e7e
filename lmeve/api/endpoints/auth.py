"""Manual login and current ESI session"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from typing import Any, Dict
import logging

from lmeve.api.deps import expect, get_resolver, query_params, read_json
from lmeve.database.gateway import DatabaseGateway, fetch_rows, get_gateway
from lmeve.exceptions import LmeveException
from lmeve.models.user import AuthMethod, User
from lmeve.security.auth import authenticate_user
from lmeve.services.settings_resolver import SettingsResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


@router.post("/login")
def login(
    request: Request,
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """
    Manual user login

    Database credentials come from the query string when present (used to
    validate credentials before they are saved), otherwise from stored settings.
    Legacy password hashes are upgraded to bcrypt on success.
    """
    expect(payload, ["username", "password"])
    username = str(payload["username"]).strip()
    password = str(payload["password"])

    try:
        with gateway.session(resolver.database_config(query_params(request))) as conn:
            user = authenticate_user(conn, username, password)
    except LmeveException:
        raise
    except Exception as e:
        logger.error(f"Login error: {str(e)}", exc_info=True)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Unhandled error", "detail": str(e)})

    logger.info(f"User logged in: {username} (role: {user['role']})")
    return {"ok": True, "user": user}


@router.get("/session")
def current_session(
    request: Request,
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """Most recent ESI login, or null"""
    users = User.__table__
    stmt = (
        select(
            users.c.id, users.c.username, users.c.character_id, users.c.character_name,
            users.c.corporation_id, users.c.scopes, users.c.auth_method, users.c.role,
            users.c.is_active, users.c.last_login,
        )
        .where(users.c.auth_method == AuthMethod.ESI.value)
        .order_by(users.c.last_login.desc())
        .limit(1)
    )
    with gateway.session(resolver.database_config(query_params(request))) as conn:
        rows = fetch_rows(conn, stmt)
    return {"ok": True, "user": rows[0] if rows else None}
