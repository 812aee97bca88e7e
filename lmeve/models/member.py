"""Corporation member model"""

from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, DateTime
from datetime import datetime
from lmeve.database.base import Base


class Member(Base):
    """Corporation member, keyed by character_id"""

    __tablename__ = "members"
    __natural_key__ = "character_id"

    id = Column(Integer, primary_key=True, autoincrement=True)
    character_id = Column(BigInteger, nullable=False, unique=True)
    character_name = Column(String(255), nullable=False)
    corporation_id = Column(BigInteger, nullable=False, index=True)
    corporation_name = Column(String(255), nullable=True)
    alliance_id = Column(BigInteger, nullable=True)
    alliance_name = Column(String(255), nullable=True)
    # JSON arrays, stored as text
    roles = Column(Text, nullable=True)
    titles = Column(Text, nullable=True)
    last_login = Column(DateTime, nullable=True)
    location_id = Column(BigInteger, nullable=True)
    location_name = Column(String(255), nullable=True)
    ship_type_id = Column(Integer, nullable=True)
    ship_type_name = Column(String(255), nullable=True)
    is_online = Column(Boolean, nullable=False, default=False)
    updated_date = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
