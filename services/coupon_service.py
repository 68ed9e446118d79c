"""
Coupon Service - one-time codes that grant admin access
"""

import logging
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.coupon import CouponRepository
from crud.user import UserRepository
from services.errors import (
    BillingError,
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    UnauthenticatedError,
)

logger = logging.getLogger(__name__)

ALREADY_USED = "This coupon has already been used."


def normalize_code(code) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


class CouponService:
    """
    Redeems coupons and supports the admin coupon list.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.coupons = CouponRepository(db)
        self.users = UserRepository(db)

    async def redeem_coupon(self, user_id: str, code) -> dict:
        """
        Redeem a one-time coupon and promote the caller to admin.

        The coupon claim and the role change commit in one transaction. The
        claim only matches an unused coupon, so when two callers race on the
        same code the second one finds nothing to claim and fails.

        Args:
            user_id: Authenticated user id
            code: Raw code as typed by the user

        Returns:
            {"success": True, "message": str}
        """
        if not user_id:
            raise UnauthenticatedError("You must be signed in to redeem a coupon.")

        normalized = normalize_code(code)
        if not normalized:
            raise InvalidArgumentError("Please enter a coupon code.")

        try:
            coupon = await self.coupons.get_by_code(normalized)
            if coupon is None:
                raise NotFoundError("This coupon code is invalid or does not exist.")
            if coupon.used_by:
                raise FailedPreconditionError(ALREADY_USED)

            coupon_id = coupon.id
            if not await self.coupons.claim(coupon_id, user_id):
                await self.db.rollback()
                logger.warning(f"Coupon {coupon_id} was claimed concurrently; rejecting user {user_id}")
                raise FailedPreconditionError(ALREADY_USED)

            if not await self.users.promote_to_admin(user_id):
                await self.db.rollback()
                logger.error(f"Coupon redemption failed: user {user_id} not found")
                raise InternalError("Failed to redeem coupon")

            await self.db.commit()
        except BillingError:
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error redeeming coupon for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to redeem coupon")

        logger.info(f"Coupon redeemed: user={user_id} coupon={coupon_id} code={normalized}")
        return {
            "success": True,
            "message": "Coupon redeemed! You now have admin access.",
        }

    async def create_coupon(self, name: Optional[str], code, created_by: Optional[str]) -> dict:
        normalized = normalize_code(code)
        if not normalized:
            raise InvalidArgumentError("Coupon code is required.")

        if await self.coupons.get_by_code(normalized) is not None:
            raise FailedPreconditionError("This coupon code already exists. Please choose another.")

        try:
            coupon = await self.coupons.create_coupon((name or "").strip(), normalized, created_by)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create coupon {normalized}: {e}", exc_info=True)
            raise InternalError("Failed to create coupon.")

        logger.info(f"Coupon created: id={coupon.id} code={normalized} by={created_by}")
        return coupon_to_dict(coupon)

    async def list_coupons(self) -> List[dict]:
        return [coupon_to_dict(coupon) for coupon in await self.coupons.list_coupons()]

    async def delete_coupon(self, coupon_id: str) -> None:
        """Delete a coupon. Used coupons are kept as a permanent record."""
        coupon = await self.coupons.get_by_id(coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon not found.")
        if coupon.used_by:
            raise FailedPreconditionError("Used coupons cannot be deleted.")

        try:
            await self.coupons.delete_coupon(coupon)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete coupon {coupon_id}: {e}", exc_info=True)
            raise InternalError("Failed to delete coupon.")

        logger.info(f"Coupon deleted: id={coupon_id}")


def coupon_to_dict(coupon) -> dict:
    return {
        "id": coupon.id,
        "name": coupon.name or "",
        "code": coupon.code,
        "created_by": coupon.created_by or "",
        "used_by": coupon.used_by,
        "status": "used" if coupon.used_by else "new",
        "created_at": coupon.created_at.isoformat() if coupon.created_at else None,
    }
