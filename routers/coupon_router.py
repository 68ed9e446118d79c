"""
Coupon Router - redemption for users, management for admins
"""

from typing import Optional
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, require_admin
from backend.utils.responses import success_response, billing_error_response
from database import get_db
from services.coupon_service import CouponService
from services.errors import BillingError

coupon_router = APIRouter(prefix="/api/coupons", tags=["coupons"])
admin_coupon_router = APIRouter(prefix="/api/admin/coupons", tags=["admin"])


@coupon_router.post("/redeem")
async def redeem_coupon(
    code: Optional[str] = Body(default=None, embed=True),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Redeem a one-time coupon code for admin access."""
    try:
        result = await CouponService(db).redeem_coupon(current_user["user_id"], code)
    except BillingError as e:
        return billing_error_response(e)
    return success_response(result, message=result["message"])


@admin_coupon_router.get("")
async def list_coupons(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await CouponService(db).list_coupons())


@admin_coupon_router.post("")
async def create_coupon(
    name: Optional[str] = Body(default=None),
    code: Optional[str] = Body(default=None),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        coupon = await CouponService(db).create_coupon(name, code, admin["user_id"])
    except BillingError as e:
        return billing_error_response(e)
    return success_response(coupon, status=201)


@admin_coupon_router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an unused coupon."""
    try:
        await CouponService(db).delete_coupon(coupon_id)
    except BillingError as e:
        return billing_error_response(e)
    return success_response({"id": coupon_id}, message="Coupon deleted")
