"""Health check endpoint"""

from fastapi import APIRouter, Depends, Response, status
import logging
import os

from lmeve.schemas.response import HealthResponse
from lmeve.storage.files import FileStorage, get_storage

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
def health_check(response: Response, storage: FileStorage = Depends(get_storage)):
    """
    Liveness check

    Reports the storage directory in use and whether it is writable. The
    database is not probed: its credentials are per request.
    """
    writable = os.access(storage.directory, os.W_OK)
    if not writable:
        logger.error(f"Storage directory not writable: {storage.directory}")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        ok=writable,
        status="healthy" if writable else "unhealthy",
        storageDir=str(storage.directory),
        storageWritable=writable,
    )
