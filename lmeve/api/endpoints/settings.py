"""Server-side settings storage

The dashboard keeps its settings on the server so they survive across
browsers and origins. Secrets never leave the server unmasked.
"""

from fastapi import APIRouter, Depends
from typing import Any, Dict
import logging

from lmeve.api.deps import get_resolver, read_json
from lmeve.services.settings_resolver import SettingsResolver, mask_secrets

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/settings")
def get_settings_document(resolver: SettingsResolver = Depends(get_resolver)):
    """
    Get stored settings

    Returns the saved document with secrets masked, or null if nothing was saved yet
    """
    document = resolver.load()
    return {
        "ok": True,
        "settings": mask_secrets(document) if document is not None else None
    }


@router.post("/settings")
def save_settings_document(
    payload: Dict[str, Any] = Depends(read_json),
    resolver: SettingsResolver = Depends(get_resolver)
):
    """
    Save settings

    The posted document replaces the stored one. Secrets posted as the mask keep their stored value.
    """
    resolver.save(payload)
    logger.info("Settings saved")
    return {"ok": True}
