"""System status schemas"""

from pydantic import BaseModel, Field
from typing import Optional


class EveStatus(BaseModel):
    """Game server"""
    status: str = "unknown"
    players: int = 0


class EsiStatus(BaseModel):
    """ESI API availability"""
    status: str = "unknown"


class CorpEsiStatus(BaseModel):
    """Corporations registered for ESI sync"""
    status: str = "unknown"
    corpCount: int = 0


class SdeStatus(BaseModel):
    """Installed vs. latest static data export"""
    currentVersion: Optional[str] = None
    latestVersion: Optional[str] = None
    ageDays: Optional[int] = None
    status: str = "unknown"


class DatabaseStatus(BaseModel):
    connected: bool = False


class ServerStatus(BaseModel):
    hostname: Optional[str] = None
    publicIp: Optional[str] = None


class SystemStatus(BaseModel):
    """Aggregated status snapshot"""
    lastUpdated: str
    eve: EveStatus = Field(default_factory=EveStatus)
    esi: EsiStatus = Field(default_factory=EsiStatus)
    corpEsi: CorpEsiStatus = Field(default_factory=CorpEsiStatus)
    sde: SdeStatus = Field(default_factory=SdeStatus)
    database: DatabaseStatus = Field(default_factory=DatabaseStatus)
    activeUsers: int = 0
    server: ServerStatus = Field(default_factory=ServerStatus)
