"""EVE SSO relays: login callback, token refresh and browser-side proxies"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from typing import Any, Callable, Dict
from urllib.parse import urlencode
import logging

import httpx

from lmeve.api.deps import expect, get_resolver, query_params, read_json, read_json_or_empty, read_json_or_form
from lmeve.database.gateway import DatabaseGateway, get_gateway
from lmeve.exceptions import ValidationException
from lmeve.services.esi_client import EsiClient, get_esi_client
from lmeve.services.oauth_service import (
    EXPIRY_FORMAT,
    OAuthService,
    store_login,
    store_refreshed_tokens,
)
from lmeve.services.settings_resolver import EsiConfig, SettingsResolver

logger = logging.getLogger(__name__)

router = APIRouter()

NO_CACHE_HEADERS = {"Cache-Control": "no-store, max-age=0", "Pragma": "no-cache"}


def _require_esi_config(config: EsiConfig) -> None:
    for field, value in (("clientId", config.client_id), ("clientSecret", config.client_secret)):
        if value == "":
            raise ValidationException(f"Missing required field: {field}")


def _esi_callback(payload: Dict[str, Any], resolver: SettingsResolver, gateway: DatabaseGateway, esi: EsiClient):
    expect(payload, ["code"])
    esi_config = resolver.esi_config(payload)
    _require_esi_config(esi_config)
    if esi_config.callback_url == "":
        raise ValidationException("Missing required field: redirectUri")

    service = OAuthService(esi, esi_config)
    with gateway.session(resolver.database_config(payload)) as conn:
        result = service.login(str(payload["code"]), esi_config.callback_url)
        row = result["row"]
        store_login(conn, row)

    logger.info(f"ESI login stored for {row['character_name']} ({row['character_id']})")
    return {
        "ok": True,
        "characterId": row["character_id"],
        "characterName": row["character_name"],
        "corporationId": row["corporation_id"],
        "scopes": row["scopes"],
        "expiresAt": row["token_expiry"].strftime(EXPIRY_FORMAT),
        "tokenType": result["token_type"],
    }


@router.get("/auth/esi/callback")
def esi_callback_get(
    request: Request,
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway),
    esi: EsiClient = Depends(get_esi_client)
):
    """SSO callback with parameters in the query string"""
    return _esi_callback(query_params(request), resolver, gateway, esi)


@router.post("/auth/esi/callback")
def esi_callback_post(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway),
    esi: EsiClient = Depends(get_esi_client)
):
    """
    SSO callback

    Exchanges the authorization code, verifies the character, looks up its
    corporation and stores the tokens on the matching user.
    """
    return _esi_callback(payload, resolver, gateway, esi)


@router.post("/auth/esi/refresh")
def esi_refresh(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway),
    esi: EsiClient = Depends(get_esi_client)
):
    """Refresh a character's access token and store the new pair"""
    expect(payload, ["characterId", "refreshToken"])
    try:
        character_id = int(payload["characterId"])
    except (TypeError, ValueError):
        raise ValidationException("Invalid characterId")
    esi_config = resolver.esi_config(payload)
    _require_esi_config(esi_config)

    service = OAuthService(esi, esi_config)
    with gateway.session(resolver.database_config(payload)) as conn:
        tokens = service.refresh(str(payload["refreshToken"]))
        store_refreshed_tokens(conn, character_id, tokens)

    logger.info(f"Refreshed ESI token for character {character_id}")
    return {"ok": True, "characterId": character_id, "expiresAt": tokens.expires_at.strftime(EXPIRY_FORMAT)}


def _passthrough(call: Callable[[], httpx.Response]) -> Response:
    """Relay an upstream response: JSON objects get ok set from the status, anything else is passed as is"""
    try:
        response = call()
    except httpx.HTTPError as e:
        logger.error(f"SSO proxy request failed: {str(e)}")
        return JSONResponse(
            status_code=502,
            content={"ok": False, "error": "upstream_error", "message": str(e)},
            headers=NO_CACHE_HEADERS,
        )
    try:
        data = response.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        return Response(
            content=response.text,
            status_code=response.status_code,
            media_type="application/json",
            headers=NO_CACHE_HEADERS,
        )
    data["ok"] = 200 <= response.status_code < 300
    return JSONResponse(status_code=response.status_code, content=data, headers=NO_CACHE_HEADERS)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"ok": False, "error": message}, headers=NO_CACHE_HEADERS)


@router.post("/esi/token")
def esi_token(payload: Dict[str, Any] = Depends(read_json_or_form), esi: EsiClient = Depends(get_esi_client)):
    """
    SSO token proxy for browser clients

    Supports the authorization_code (optionally with PKCE code_verifier) and
    refresh_token grants. The upstream status and body are passed through.
    """
    grant_type = payload.get("grant_type")
    if not grant_type:
        return _bad_request("grant_type is required")

    form = {"grant_type": grant_type}
    for key in ("client_id", "client_secret"):
        if payload.get(key):
            form[key] = payload[key]

    if grant_type == "authorization_code":
        if not payload.get("code") or not payload.get("redirect_uri"):
            return _bad_request("code and redirect_uri are required for authorization_code")
        form["code"] = payload["code"]
        form["redirect_uri"] = payload["redirect_uri"]
        if payload.get("code_verifier"):
            form["code_verifier"] = payload["code_verifier"]
    elif grant_type == "refresh_token":
        if not payload.get("refresh_token"):
            return _bad_request("refresh_token is required for refresh_token grant")
        form["refresh_token"] = payload["refresh_token"]
    else:
        return _bad_request("unsupported grant_type")

    return _passthrough(lambda: esi.proxy_token(form))


@router.post("/esi/verify")
def esi_verify(
    request: Request,
    payload: Dict[str, Any] = Depends(read_json_or_empty),
    esi: EsiClient = Depends(get_esi_client)
):
    """SSO verify proxy; token from the Authorization header or a body access_token"""
    authorization = request.headers.get("authorization", "")
    if not authorization:
        if not payload.get("access_token"):
            return JSONResponse(
                status_code=400,
                content={"ok": False, "error": "missing_authorization"},
                headers=NO_CACHE_HEADERS,
            )
        authorization = f"Bearer {payload['access_token']}"
    return _passthrough(lambda: esi.verify(authorization))


@router.get("/esi-callback")
def esi_callback_relay(request: Request):
    """
    SSO redirect target

    Forwards code and state (or the SSO error) to the dashboard root, which
    finishes the login.
    """
    params = request.query_params
    if params.get("error"):
        forwarded = {"error": params["error"]}
        if params.get("error_description"):
            forwarded["error_description"] = params["error_description"]
    elif params.get("code") and params.get("state"):
        forwarded = {"code": params["code"], "state": params["state"]}
    else:
        forwarded = {"sso_error": "missing_params"}
    return RedirectResponse(url=f"/?{urlencode(forwarded)}", status_code=302, headers=NO_CACHE_HEADERS)
