"""Corporation asset model"""

from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime
from datetime import datetime
from lmeve.database.base import Base, BigIntPK


class Asset(Base):
    """One ESI asset item, keyed by item_id"""

    __tablename__ = "assets"
    __natural_key__ = "item_id"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    item_id = Column(BigInteger, nullable=False, unique=True)
    type_id = Column(Integer, nullable=False, index=True)
    location_id = Column(BigInteger, nullable=False, index=True)
    location_type = Column(String(50), nullable=True, default="station")
    location_flag = Column(String(50), nullable=True)
    quantity = Column(BigInteger, nullable=False, default=0)
    is_singleton = Column(Boolean, nullable=False, default=False)
    is_blueprint_copy = Column(Boolean, nullable=True)
    owner_id = Column(BigInteger, nullable=True, index=True)
    corporation_id = Column(BigInteger, nullable=True, index=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
