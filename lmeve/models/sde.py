"""Static data export tables"""

from sqlalchemy import Column, Integer, String
from lmeve.database.base import Base


class InvType(Base):
    """Item type names from the SDE schema"""

    __tablename__ = "invTypes"

    typeID = Column(Integer, primary_key=True, autoincrement=False)
    typeName = Column(String(100), nullable=True)
