"""Site-level key/value data (non-user, non-secret)"""

from fastapi import APIRouter, Depends, Query
from typing import Any, Dict
import logging

from lmeve.api.deps import expect, read_json
from lmeve.exceptions import StorageException, ValidationException
from lmeve.storage.files import FileStorage, SITE_DATA_FILE, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_map(document: Any) -> Dict[str, Any]:
    return document if isinstance(document, dict) else {}


@router.get("/site-data")
def get_site_data(key: str = Query(""), storage: FileStorage = Depends(get_storage)):
    """Get the value stored under a key (null if unset)"""
    if key == "":
        raise ValidationException("Missing key")
    try:
        document = storage.read_json(SITE_DATA_FILE)
    except StorageException as e:
        logger.warning(f"Site data unreadable, treating as empty: {e.message}")
        document = None
    value = _as_map(document).get(key)
    return {"ok": True, "key": key, "value": value}


@router.post("/site-data")
def put_site_data(
    payload: Dict[str, Any] = Depends(read_json),
    storage: FileStorage = Depends(get_storage)
):
    """Set the value stored under a key"""
    expect(payload, ["key"])
    key = str(payload["key"])
    value = payload.get("value")

    def assign(current):
        data = _as_map(current)
        data[key] = value
        return data

    storage.update_json(SITE_DATA_FILE, assign, replace_corrupt=True)
    logger.debug(f"Site data updated: {key}")
    return {"ok": True}
