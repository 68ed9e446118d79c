"""
CouponRepository for one-time promotional codes
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from database_models import Coupon


class CouponRepository:
    """
    Repository class for Coupon database operations.
    Codes are stored normalized (trimmed, upper-case).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(Coupon.id == coupon_id)
        )
        return result.scalar_one_or_none()

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        """
        Look up a coupon by its normalized code.

        Args:
            code: Already-normalized coupon code

        Returns:
            Coupon if found, None otherwise
        """
        result = await self.db.execute(
            select(Coupon).where(Coupon.code == code).limit(1)
        )
        return result.scalars().first()

    async def list_coupons(self) -> List[Coupon]:
        result = await self.db.execute(
            select(Coupon).order_by(Coupon.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_coupon(self, name: str, code: str, created_by: Optional[str]) -> Coupon:
        coupon = Coupon(name=name, code=code, created_by=created_by, used_by=None)
        self.db.add(coupon)
        await self.db.flush()
        await self.db.refresh(coupon)
        return coupon

    async def delete_coupon(self, coupon: Coupon) -> None:
        await self.db.delete(coupon)
        await self.db.flush()

    async def claim(self, coupon_id: str, user_id: str) -> bool:
        """
        Atomically mark a coupon as used by user_id.

        The "unused" condition is part of the UPDATE itself, so of two
        concurrent claims only one can match a row.

        Returns:
            True if this call claimed the coupon, False if it was already used
        """
        result = await self.db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.used_by.is_(None))
            .values(used_by=user_id)
        )
        return result.rowcount == 1
