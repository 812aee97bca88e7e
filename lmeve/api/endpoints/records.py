"""Corporation data endpoints: reads, job assignment and ESI bulk upserts"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict
import logging
import re

from lmeve.api.deps import clamp_limit, expect, get_resolver, optional_int, read_json
from lmeve.database.gateway import DatabaseGateway, fetch_rows, get_gateway
from lmeve.database.upsert import CoercionError, UpsertSpec, bulk_upsert, upsert_one
from lmeve.exceptions import DatabaseException, ValidationException
from lmeve.models import Asset, Character, IndustryJob, MarketOrder, Member
from lmeve.services.settings_resolver import SettingsResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lmeve")

ASSET_UPSERT = UpsertSpec.for_model(Asset, defaults={"location_type": "station"})
INDUSTRY_JOB_UPSERT = UpsertSpec.for_model(IndustryJob)
MARKET_ORDER_UPSERT = UpsertSpec.for_model(MarketOrder)
MEMBER_UPSERT = UpsertSpec.for_model(Member)

ASSIGN_JOB_REQUIRED = [
    "job_id", "corporation_id", "installer_id", "blueprint_type_id", "product_type_id",
    "runs", "status", "start_date", "end_date",
]


def _rows_response(rows):
    return {"ok": True, "rows": rows, "rowCount": len(rows)}


@router.post("/get-assets")
def get_assets(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """
    List assets

    Optional `ownerId` filter; `limit` defaults to 200, at most 5000
    """
    limit = clamp_limit(payload, 200, 5000)
    owner_id = optional_int(payload, "ownerId")
    assets = Asset.__table__

    stmt = select(assets)
    if owner_id > 0:
        stmt = stmt.where(assets.c.owner_id == owner_id)
    stmt = stmt.limit(limit)

    with gateway.session(resolver.database_config(payload)) as conn:
        rows = fetch_rows(conn, stmt)
    return _rows_response(rows)


@router.post("/get-characters")
def get_characters(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """List characters ordered by name, optionally for one corporation"""
    limit = clamp_limit(payload, 200, 2000)
    corporation_id = optional_int(payload, "corporationId")
    characters = Character.__table__

    stmt = select(characters)
    if corporation_id > 0:
        stmt = stmt.where(characters.c.corporation_id == corporation_id)
    stmt = stmt.order_by(characters.c.name).limit(limit)

    with gateway.session(resolver.database_config(payload)) as conn:
        rows = fetch_rows(conn, stmt)
    return _rows_response(rows)


@router.post("/get-industry-jobs")
def get_industry_jobs(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """
    List industry jobs, latest end date first

    `status` is upper-cased and stripped to [A-Z_] before filtering
    """
    limit = clamp_limit(payload, 200, 2000)
    status = re.sub(r"[^A-Z_]", "", str(payload.get("status") or "").upper())
    jobs = IndustryJob.__table__

    stmt = select(jobs)
    if status:
        stmt = stmt.where(jobs.c.status == status)
    stmt = stmt.order_by(jobs.c.end_date.desc()).limit(limit)

    with gateway.session(resolver.database_config(payload)) as conn:
        rows = fetch_rows(conn, stmt)
    return _rows_response(rows)


@router.post("/assign-job")
def assign_job(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """Create or replace one industry job"""
    expect(payload, ASSIGN_JOB_REQUIRED)
    try:
        INDUSTRY_JOB_UPSERT.row_values(payload)
    except CoercionError as e:
        raise ValidationException(str(e))

    with gateway.session(resolver.database_config(payload)) as conn:
        try:
            affected = upsert_one(conn, INDUSTRY_JOB_UPSERT, payload)
        except SQLAlchemyError as e:
            reason = str(e).split("\n")[0]
            logger.error(f"Assigning job {payload['job_id']} failed: {reason}")
            raise DatabaseException("DB execute failed", {"detail": reason})

    logger.info(f"Industry job {payload['job_id']} assigned")
    return {"ok": True, "affected": affected}


def _bulk(payload: Dict[str, Any], spec: UpsertSpec, resolver: SettingsResolver, gateway: DatabaseGateway):
    records = payload.get("records")
    if not isinstance(records, list) or len(records) == 0:
        raise ValidationException("records must be a non-empty array")

    with gateway.session(resolver.database_config(payload)) as conn:
        result = bulk_upsert(conn, spec, records)
    return {"ok": True, **result.as_dict()}


@router.post("/esi/upsert-assets")
def upsert_assets(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """Bulk upsert ESI assets keyed by item_id"""
    return _bulk(payload, ASSET_UPSERT, resolver, gateway)


@router.post("/esi/upsert-industry-jobs")
def upsert_industry_jobs(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """Bulk upsert ESI industry jobs keyed by job_id"""
    return _bulk(payload, INDUSTRY_JOB_UPSERT, resolver, gateway)


@router.post("/esi/upsert-market-orders")
def upsert_market_orders(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """Bulk upsert ESI market orders keyed by order_id"""
    return _bulk(payload, MARKET_ORDER_UPSERT, resolver, gateway)


@router.post("/esi/upsert-members")
def upsert_members(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """Bulk upsert corporation members keyed by character_id"""
    return _bulk(payload, MEMBER_UPSERT, resolver, gateway)
