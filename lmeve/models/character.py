"""Character model"""

from sqlalchemy import Column, BigInteger, String, DateTime
from lmeve.database.base import Base


class Character(Base):
    """Known character (read-only from the API)"""

    __tablename__ = "characters"

    character_id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, index=True)
    corporation_id = Column(BigInteger, nullable=True, index=True)
    alliance_id = Column(BigInteger, nullable=True)
    security_status = Column(String(16), nullable=True)
    birthday = Column(DateTime, nullable=True)
