"""Static data: type names, SDE release check and seed data files"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy import select
from typing import Any, Dict, List
import logging

from lmeve.api.deps import get_resolver, read_json
from lmeve.config import settings
from lmeve.database.gateway import DatabaseGateway, fetch_rows, get_gateway
from lmeve.exceptions import StorageException, ValidationException
from lmeve.models.sde import InvType
from lmeve.services.esi_client import EsiClient, get_esi_client
from lmeve.services.sde_service import SdeService
from lmeve.services.settings_resolver import SettingsResolver
from lmeve.storage.files import DATA_DIR, FileStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()

DATA_RESOURCES = {
    "industry_jobs": "industry_jobs.json",
    "blueprints": "blueprints.json",
    "assets": "assets.json",
    "market_prices": "market_prices.json",
}


def positive_ids(values: List[Any]) -> List[int]:
    """Integer ids greater than zero, in order, others dropped"""
    ids = []
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if number > 0:
            ids.append(number)
    return ids


@router.post("/sde/get-type-names")
def get_type_names(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """
    Look up type names in the SDE schema

    Body: `typeIds` (non-empty array), optional `sdeDatabase`
    """
    type_ids = payload.get("typeIds")
    if not isinstance(type_ids, list) or len(type_ids) == 0:
        raise ValidationException("typeIds must be a non-empty array")
    ids = positive_ids(type_ids)
    if not ids:
        raise ValidationException("No valid typeIds provided")

    sde_database = str(payload.get("sdeDatabase") or settings.DEFAULT_SDE_DATABASE)
    inv_types = InvType.__table__
    stmt = select(inv_types.c.typeID, inv_types.c.typeName).where(inv_types.c.typeID.in_(ids))

    with gateway.session(resolver.database_config(payload), database=sde_database) as conn:
        rows = fetch_rows(conn, stmt)
    return {"ok": True, "rows": rows}


@router.get("/sde-latest")
def sde_latest(
    storage: FileStorage = Depends(get_storage),
    esi: EsiClient = Depends(get_esi_client)
):
    """Latest Fuzzwork SDE release date, checked at most once a day"""
    return SdeService(storage, esi).latest()


@router.get("/names")
def get_names(ids: str = Query(""), storage: FileStorage = Depends(get_storage)):
    """
    Type names from the bundled type_names.json

    `ids` is a comma-separated list; ids without a known name are omitted
    """
    wanted = positive_ids(ids.split(",")) if ids else []
    if not wanted:
        return []
    try:
        document = storage.read_json(f"{DATA_DIR}/type_names.json")
    except StorageException as e:
        logger.warning(f"Type names unavailable: {e.message}")
        return []

    known = {}
    for entry in document if isinstance(document, list) else []:
        if isinstance(entry, dict) and entry.get("type_name") is not None:
            entry_ids = positive_ids([entry.get("type_id")])
            if entry_ids:
                known[entry_ids[0]] = entry["type_name"]

    return [{"type_id": type_id, "type_name": known[type_id]} for type_id in wanted if type_id in known]


@router.get("/data")
def get_data(resource: str = Query(""), storage: FileStorage = Depends(get_storage)):
    """Seed data for the dashboard, served as stored; an empty list when the file is absent"""
    filename = DATA_RESOURCES.get(resource.strip().lower())
    if filename is None:
        return JSONResponse(status_code=400, content={"error": "invalid_resource", "message": "Unknown resource"})
    raw = storage.read_text(f"{DATA_DIR}/{filename}")
    return Response(content=raw if raw is not None else "[]", media_type="application/json")
