"""Declarative base for table definitions"""

from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# BIGINT surrogate keys only autoincrement as INTEGER on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")
