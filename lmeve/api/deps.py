"""Shared request helpers and dependencies"""

from typing import Any, Dict, Iterable

from fastapi import Depends, Request

from lmeve.exceptions import ValidationException
from lmeve.services.settings_resolver import SettingsResolver, is_blank
from lmeve.storage.files import FileStorage, get_storage


async def read_json(request: Request) -> Dict[str, Any]:
    """Request body as a JSON object; anything else is a 400"""
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationException("Invalid JSON body")
    if not isinstance(payload, dict):
        raise ValidationException("Invalid JSON body")
    return payload


async def read_json_or_empty(request: Request) -> Dict[str, Any]:
    """Request body as a JSON object, or {} when absent or malformed"""
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


async def read_json_or_form(request: Request) -> Dict[str, Any]:
    """JSON object body, falling back to form fields"""
    payload = await read_json_or_empty(request)
    if payload:
        return payload
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    return {}


def query_params(request: Request) -> Dict[str, Any]:
    return dict(request.query_params)


def expect(payload: Dict[str, Any], required: Iterable[str]) -> None:
    """
    Fail with 400 on the first required field that is missing, null or empty

    Raises:
        ValidationException: Naming the missing field
    """
    for key in required:
        if key not in payload or is_blank(payload[key]):
            raise ValidationException(f"Missing required field: {key}")


def clamp_limit(payload: Dict[str, Any], default: int = 100, maximum: int = 1000) -> int:
    """Row limit from the payload, clamped to [1, maximum]"""
    try:
        limit = int(payload["limit"]) if payload.get("limit") is not None else default
    except (TypeError, ValueError):
        limit = default
    return max(1, min(limit, maximum))


def optional_int(payload: Dict[str, Any], key: str) -> int:
    """Integer field or 0 when absent or not numeric"""
    try:
        return int(payload.get(key) or 0)
    except (TypeError, ValueError):
        return 0


def get_resolver(storage: FileStorage = Depends(get_storage)) -> SettingsResolver:
    """Settings resolver dependency"""
    return SettingsResolver(storage)
