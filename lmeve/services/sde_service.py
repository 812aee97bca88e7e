"""Latest static data export (SDE) release lookup

The Fuzzwork dump is re-published in place; its Last-Modified date is the
release marker. Remote checks are throttled to one per SDE_CHECK_INTERVAL
and the last answer is kept in sde-cache.json.
"""

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional
import logging

import httpx

from lmeve.config import settings
from lmeve.exceptions import LmeveException, StorageException
from lmeve.services.esi_client import EsiClient
from lmeve.storage.files import FileStorage, SDE_CACHE_FILE

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _parse_iso(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def version_from_last_modified(header: Optional[str]) -> Optional[str]:
    """HTTP date -> YYYY-MM-DD, None when missing or unparseable"""
    if not header:
        return None
    try:
        return parsedate_to_datetime(header).strftime("%Y-%m-%d")
    except (TypeError, ValueError):
        return None


class SdeService:
    """Throttled, cached check of the latest SDE release"""

    def __init__(self, storage: FileStorage, esi: EsiClient):
        self.storage = storage
        self.esi = esi
        self.interval = timedelta(seconds=settings.SDE_CHECK_INTERVAL)

    def _cache(self) -> Optional[Dict[str, Any]]:
        try:
            cache = self.storage.read_json(SDE_CACHE_FILE)
        except StorageException as e:
            logger.warning(f"Ignoring unreadable SDE cache: {str(e)}")
            return None
        return cache if isinstance(cache, dict) else None

    def latest(self, timeout: float = None) -> Dict[str, Any]:
        """
        Latest SDE version

        Args:
            timeout: Remote check timeout, defaults to SDE_CHECK_TIMEOUT

        Returns:
            {ok, latestVersion, lastChecked, nextAllowed, source[, note]}

        Raises:
            LmeveException: 502 when the remote check fails and nothing is cached
        """
        now = utc_now()
        cache = self._cache()
        last_checked = _parse_iso(cache.get("lastChecked")) if cache else None
        next_allowed = last_checked + self.interval if last_checked else None

        if cache and cache.get("latestVersion") and next_allowed and next_allowed > now:
            return {
                "ok": True,
                "latestVersion": cache["latestVersion"],
                "lastChecked": cache.get("lastChecked"),
                "nextAllowed": next_allowed.isoformat(),
                "source": "cache",
            }

        if timeout is None:
            timeout = settings.SDE_CHECK_TIMEOUT
        status_code = 0
        error = None
        try:
            response = self.esi.head(settings.SDE_LATEST_URL, timeout=timeout)
            status_code = response.status_code
        except httpx.HTTPError as e:
            response = None
            error = str(e)

        if response is None or not 200 <= status_code < 400:
            logger.warning(f"SDE latest check failed (status {status_code}): {error}")
            if cache and cache.get("latestVersion"):
                return {
                    "ok": True,
                    "latestVersion": cache["latestVersion"],
                    "lastChecked": cache.get("lastChecked"),
                    "nextAllowed": (next_allowed or now + self.interval).isoformat(),
                    "source": "cache",
                    "note": "remote_unavailable",
                }
            raise LmeveException(
                "Failed to fetch SDE latest metadata",
                {"httpCode": status_code, "detail": error},
                status_code=502,
            )

        # Without a usable date, today keeps us from re-checking until tomorrow
        latest_version = version_from_last_modified(response.headers.get("last-modified")) or now.strftime("%Y-%m-%d")
        last_checked_text = now.isoformat()
        try:
            self.storage.write_json(SDE_CACHE_FILE, {"latestVersion": latest_version, "lastChecked": last_checked_text})
        except StorageException as e:
            logger.warning(f"Cannot write SDE cache: {str(e)}")
        logger.info(f"Latest SDE version: {latest_version}")

        return {
            "ok": True,
            "latestVersion": latest_version,
            "lastChecked": last_checked_text,
            "nextAllowed": (now + self.interval).isoformat(),
            "source": "remote",
        }
