"""Market order model"""

from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime, Numeric
from datetime import datetime
from lmeve.database.base import Base, BigIntPK


class MarketOrder(Base):
    """Corporation market order, keyed by order_id"""

    __tablename__ = "market_orders"
    __natural_key__ = "order_id"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, nullable=False, unique=True)
    corporation_id = Column(BigInteger, nullable=False, index=True)
    type_id = Column(Integer, nullable=False, index=True)
    region_id = Column(BigInteger, nullable=True)
    location_id = Column(BigInteger, nullable=False)
    volume_total = Column(BigInteger, nullable=False)
    volume_remain = Column(BigInteger, nullable=False)
    min_volume = Column(Integer, nullable=True)
    price = Column(Numeric(20, 2, asdecimal=False), nullable=False)
    is_buy_order = Column(Boolean, nullable=False)
    duration = Column(Integer, nullable=False)
    issued = Column(DateTime, nullable=False, index=True)
    state = Column(String(50), nullable=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
