"""Industry job model"""

from sqlalchemy import Column, BigInteger, Integer, String, DateTime
from datetime import datetime
from lmeve.database.base import Base, BigIntPK


class IndustryJob(Base):
    """Manufacturing/research job, keyed by job_id"""

    __tablename__ = "industry_jobs"
    __natural_key__ = "job_id"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(BigInteger, nullable=False, unique=True)
    corporation_id = Column(BigInteger, nullable=False, index=True)
    installer_id = Column(BigInteger, nullable=False)
    facility_id = Column(BigInteger, nullable=True)
    activity_id = Column(Integer, nullable=True)
    blueprint_type_id = Column(Integer, nullable=False, index=True)
    product_type_id = Column(Integer, nullable=True)
    runs = Column(Integer, nullable=False)
    status = Column(String(50), nullable=False, index=True)
    duration = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    completed_date = Column(DateTime, nullable=True)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
