"""System status aggregation

Combines game server, ESI, corporation sync, SDE freshness, database and
host probes into one snapshot. Each probe that fails only degrades its own
field. The serialized snapshot is cached in system-status.json and served
verbatim while the file is younger than STATUS_CACHE_TTL.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional
import json
import logging
import re

from sqlalchemy import func, inspect, select
from sqlalchemy.exc import SQLAlchemyError

from lmeve.config import settings
from lmeve.database.gateway import DatabaseGateway
from lmeve.exceptions import LmeveException, StorageException
from lmeve.models.user import User
from lmeve.schemas.status import SystemStatus
from lmeve.services.esi_client import EsiClient
from lmeve.services.host_info import server_info
from lmeve.services.sde_service import SdeService
from lmeve.services.settings_resolver import SettingsResolver
from lmeve.storage.files import FileStorage, STATUS_CACHE_FILE

logger = logging.getLogger(__name__)

SDE_DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})")


def sde_age(version: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Age of an SDE version string containing a YYYY-MM-DD date

    Returns:
        {ageDays, status} with status green (< 90 days), yellow (< 180) or red,
        unknown when no date can be found
    """
    match = SDE_DATE_PATTERN.search(version) if isinstance(version, str) else None
    if not match:
        return {"ageDays": None, "status": "unknown"}
    try:
        released = datetime.strptime(match.group(1), "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return {"ageDays": None, "status": "unknown"}
    now = now or datetime.now(timezone.utc)
    age_days = (now - released).days
    if age_days < 90:
        status = "green"
    elif age_days < 180:
        status = "yellow"
    else:
        status = "red"
    return {"ageDays": age_days, "status": status}


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def count_active_corporations(root: Mapping[str, Any]) -> int:
    """
    Count corporations registered for ESI sync

    The most specific list wins: esi.corporations, then esi.registeredCorps,
    then the top-level corporations list. Objects count unless isActive is
    false; bare numeric ids always count.
    """
    corps = []
    if isinstance(root.get("corporations"), list):
        corps = root["corporations"]
    esi = root.get("esi")
    if isinstance(esi, dict):
        if isinstance(esi.get("registeredCorps"), list):
            corps = esi["registeredCorps"]
        if isinstance(esi.get("corporations"), list):
            corps = esi["corporations"]

    count = 0
    for corp in corps:
        if isinstance(corp, dict):
            if bool(corp.get("isActive", True)):
                count += 1
        elif _is_numeric(corp):
            count += 1
    return count


class StatusService:
    """Builds and caches the system status snapshot"""

    def __init__(
        self,
        storage: FileStorage,
        resolver: SettingsResolver,
        gateway: DatabaseGateway,
        esi: EsiClient,
    ):
        self.storage = storage
        self.resolver = resolver
        self.gateway = gateway
        self.esi = esi

    def cached(self) -> Optional[str]:
        """Cached snapshot text if it is still fresh"""
        age = self.storage.age_seconds(STATUS_CACHE_FILE)
        if age is None or age >= settings.STATUS_CACHE_TTL:
            return None
        try:
            return self.storage.read_text(STATUS_CACHE_FILE)
        except StorageException as e:
            logger.warning(f"Status cache unreadable: {str(e)}")
            return None

    def get(self, refresh: bool = False, overrides: Optional[Mapping[str, Any]] = None) -> str:
        """
        Status envelope as JSON text

        Args:
            refresh: Skip the cache and recompute
            overrides: Database connection overrides from the request

        Returns:
            Serialized {ok: true, status: {...}}
        """
        if not refresh:
            cached = self.cached()
            if cached is not None:
                return cached

        status = self.collect(overrides or {})
        body = json.dumps({"ok": True, "status": status.model_dump()}, separators=(",", ":"))
        try:
            self.storage.write_text(STATUS_CACHE_FILE, body)
        except StorageException as e:
            logger.warning(f"Cannot write status cache: {str(e)}")
        return body

    def collect(self, overrides: Mapping[str, Any]) -> SystemStatus:
        status = SystemStatus(lastUpdated=datetime.now(timezone.utc).isoformat(timespec="seconds"))

        eve = self.esi.server_status()
        if eve is not None:
            status.eve.status = "online"
            try:
                status.eve.players = int(eve.get("players") or 0)
            except (TypeError, ValueError):
                status.eve.players = 0

        status.esi.status = "online" if self.esi.swagger_available() else "offline"

        self._settings_probes(status)
        self._sde_latest(status)
        self._database_probe(status, overrides)

        server = server_info(self.esi)
        status.server.hostname = server["hostname"]
        status.server.publicIp = server["publicIp"]

        logger.info(
            f"System status computed: eve={status.eve.status} esi={status.esi.status} "
            f"db={status.database.connected} activeUsers={status.activeUsers}"
        )
        return status

    def _settings_probes(self, status: SystemStatus) -> None:
        document = self.resolver.root()
        if not document:
            return

        corp_count = count_active_corporations(document)
        status.corpEsi.corpCount = corp_count
        status.corpEsi.status = "online" if corp_count > 0 else "offline"

        sde = document.get("sde")
        if isinstance(sde, dict):
            current = sde.get("currentVersion")
            if current:
                status.sde.currentVersion = str(current)
            age = sde_age(current)
            status.sde.ageDays = age["ageDays"]
            status.sde.status = age["status"]

    def _sde_latest(self, status: SystemStatus) -> None:
        try:
            latest = SdeService(self.storage, self.esi).latest(timeout=settings.HTTP_TIMEOUT)
        except LmeveException as e:
            logger.warning(f"SDE latest unavailable: {e.message}")
            return
        status.sde.latestVersion = latest.get("latestVersion")

    def _database_probe(self, status: SystemStatus, overrides: Mapping[str, Any]) -> None:
        try:
            with self.gateway.session(self.resolver.database_config(overrides)) as conn:
                status.database.connected = True
                if not inspect(conn).has_table(User.__tablename__):
                    return
                users = User.__table__
                since = datetime.utcnow() - timedelta(minutes=settings.ACTIVE_USER_WINDOW_MINUTES)
                count = conn.execute(
                    select(func.count()).select_from(users).where(users.c.last_login >= since)
                ).scalar()
                status.activeUsers = int(count or 0)
        except LmeveException as e:
            logger.warning(f"Status database probe failed: {e.message}")
        except SQLAlchemyError as e:
            logger.warning(f"Status active user count failed: {str(e)}")
