"""Generic response schemas"""

from pydantic import BaseModel
from typing import Optional


class HealthResponse(BaseModel):
    """Health check response schema"""
    ok: bool
    status: str
    storageDir: Optional[str] = None
    storageWritable: bool = False
