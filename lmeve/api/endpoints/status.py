"""System status, host information, login metrics and connection test"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict
import logging
import time

from lmeve.api.deps import get_resolver, query_params, read_json_or_empty
from lmeve.config import settings
from lmeve.database.gateway import DatabaseGateway, get_gateway, server_identity
from lmeve.exceptions import LmeveException
from lmeve.models.user import AuthMethod, User
from lmeve.services.esi_client import EsiClient, get_esi_client
from lmeve.services.host_info import server_info
from lmeve.services.settings_resolver import SettingsResolver
from lmeve.services.status_service import StatusService
from lmeve.storage.files import FileStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_DB_CONFIG = (
    "Missing database configuration (host/username/database). "
    "Configure in Settings first or include overrides in the request body."
)


@router.get("/system-status")
def system_status(
    request: Request,
    refresh: str = Query(""),
    storage: FileStorage = Depends(get_storage),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway),
    esi: EsiClient = Depends(get_esi_client)
):
    """
    Aggregated system status

    Served from a 10 minute cache unless `refresh=1` or `refresh=true`
    """
    service = StatusService(storage, resolver, gateway, esi)
    body = service.get(refresh=refresh in ("1", "true"), overrides=query_params(request))
    return Response(content=body, media_type="application/json")


@router.get("/host-info")
def host_info(request: Request, esi: EsiClient = Depends(get_esi_client)):
    """Server and client addresses, to help with callback and firewall setup"""
    return {
        "ok": True,
        "server": server_info(esi),
        "client": {
            "ip": request.client.host if request.client else None,
            "forwardedFor": request.headers.get("x-forwarded-for"),
        },
    }


@router.get("/app-metrics")
def app_metrics(
    request: Request,
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """
    First-run counters

    Counts users that have logged in at least once, per login method. Zeros
    and dbConnected=false when the database is not reachable yet.
    """
    metrics = {"ok": True, "dbConnected": False, "manualLoginCount": 0, "ssoLoginCount": 0}
    users = User.__table__

    def logged_in(method: AuthMethod):
        return (
            select(func.count())
            .select_from(users)
            .where(users.c.auth_method == method.value, users.c.last_login.isnot(None))
        )

    try:
        with gateway.session(resolver.database_config(query_params(request))) as conn:
            if inspect(conn).has_table(User.__tablename__):
                metrics["manualLoginCount"] = int(conn.execute(logged_in(AuthMethod.MANUAL)).scalar() or 0)
                metrics["ssoLoginCount"] = int(conn.execute(logged_in(AuthMethod.ESI)).scalar() or 0)
                metrics["dbConnected"] = True
    except LmeveException as e:
        logger.info(f"App metrics without database: {e.message}")
    except SQLAlchemyError as e:
        logger.warning(f"App metrics query failed: {str(e)}")

    return metrics


@router.post("/test-connection")
def test_connection(
    payload: Dict[str, Any] = Depends(read_json_or_empty),
    resolver: SettingsResolver = Depends(get_resolver),
    gateway: DatabaseGateway = Depends(get_gateway)
):
    """
    Check MySQL connectivity and schema access

    Uses stored settings unless the body overrides them. Reports whether the
    application and SDE schemas exist and can be queried.
    """
    config = resolver.database_config(payload)
    sde_database = str(payload.get("sdeDatabase") or settings.DEFAULT_SDE_DATABASE)
    if config.host == "" or config.username == "" or config.database == "":
        return {"ok": False, "error": MISSING_DB_CONFIG}

    start = time.monotonic()
    try:
        conn = gateway.connect(config)
    except LmeveException as e:
        latency_ms = int(round((time.monotonic() - start) * 1000))
        return {**e.to_response(), "latencyMs": latency_ms}
    latency_ms = int(round((time.monotonic() - start) * 1000))

    engine = conn.engine
    try:
        try:
            identity = server_identity(conn)
        except SQLAlchemyError as e:
            logger.warning(f"Cannot read server identity: {str(e)}")
            identity = {"serverVersion": None, "currentUser": None}
        has_lmeve_db, can_select_lmeve = _schema_access(gateway, conn, config.database)
        has_sde_db, can_select_sde = _schema_access(gateway, conn, sde_database)
    finally:
        conn.close()
        engine.dispose()

    logger.info(f"Connection test to {config.host}:{config.port} succeeded in {latency_ms} ms")
    return {
        "ok": True,
        "latencyMs": latency_ms,
        "serverVersion": identity["serverVersion"],
        "currentUser": identity["currentUser"],
        "host": config.host,
        "port": config.port,
        "database": config.database,
        "sdeDatabase": sde_database,
        "hasLmeveDb": has_lmeve_db,
        "canSelectLmeve": can_select_lmeve,
        "hasSdeDb": has_sde_db,
        "canSelectSde": can_select_sde,
    }


def _schema_access(gateway: DatabaseGateway, conn, database: str):
    """(schema selectable, trivial query succeeds)"""
    if not gateway.try_select_schema(conn, database):
        return False, False
    try:
        conn.execute(select(1))
        conn.commit()
    except SQLAlchemyError:
        conn.rollback()
        return True, False
    return True, True
