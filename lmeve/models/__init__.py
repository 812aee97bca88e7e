"""Database models package"""

from lmeve.models.user import User, AuthMethod, UserRole
from lmeve.models.asset import Asset
from lmeve.models.industry_job import IndustryJob
from lmeve.models.market_order import MarketOrder
from lmeve.models.member import Member
from lmeve.models.character import Character
from lmeve.models.sde import InvType

__all__ = [
    "User",
    "AuthMethod",
    "UserRole",
    "Asset",
    "IndustryJob",
    "MarketOrder",
    "Member",
    "Character",
    "InvType",
]
