"""
Tests for coupon redemption and admin coupon management
"""
import asyncio

import pytest

from crud.coupon import CouponRepository
from crud.user import UserRepository
from database import Base, build_engine, make_session_factory
from database_models import USER_TYPE_ADMIN, USER_TYPE_USER
from services.coupon_service import CouponService, normalize_code
from services.errors import (
    BillingError,
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    UnauthenticatedError,
)

from tests.helpers import create_test_user


async def _create_coupon(db, code="WELCOME-ADMIN", name="Launch", created_by=None):
    coupon = await CouponRepository(db).create_coupon(name, code, created_by)
    await db.commit()
    return coupon


@pytest.mark.parametrize(
    "raw,expected",
    [("  welcome-admin ", "WELCOME-ADMIN"), ("abc", "ABC"), ("   ", ""), (None, ""), (42, "")],
)
def test_normalize_code(raw, expected):
    assert normalize_code(raw) == expected


@pytest.mark.asyncio
async def test_redeem_coupon_promotes_user(test_db):
    user = await create_test_user(test_db)
    coupon = await _create_coupon(test_db)

    result = await CouponService(test_db).redeem_coupon(user.id, " welcome-admin ")

    assert result == {"success": True, "message": "Coupon redeemed! You now have admin access."}

    await test_db.refresh(coupon)
    assert coupon.used_by == user.id
    refreshed = await UserRepository(test_db).get_user_by_id(user.id)
    await test_db.refresh(refreshed)
    assert refreshed.user_type == USER_TYPE_ADMIN


@pytest.mark.asyncio
async def test_redeem_unknown_code_is_not_found(test_db):
    user = await create_test_user(test_db)

    with pytest.raises(NotFoundError, match="invalid or does not exist"):
        await CouponService(test_db).redeem_coupon(user.id, "NOPE")


@pytest.mark.asyncio
async def test_redeem_used_coupon_fails_and_keeps_role(test_db):
    first = await create_test_user(test_db, email="first@example.com")
    second = await create_test_user(test_db, email="second@example.com")
    await _create_coupon(test_db)
    await CouponService(test_db).redeem_coupon(first.id, "WELCOME-ADMIN")

    with pytest.raises(FailedPreconditionError, match="already been used"):
        await CouponService(test_db).redeem_coupon(second.id, "WELCOME-ADMIN")

    refreshed = await UserRepository(test_db).get_user_by_id(second.id)
    await test_db.refresh(refreshed)
    assert refreshed.user_type == USER_TYPE_USER


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [None, "", "   "])
async def test_redeem_empty_code_is_invalid(test_db, code):
    user = await create_test_user(test_db)

    with pytest.raises(InvalidArgumentError, match="Please enter a coupon code"):
        await CouponService(test_db).redeem_coupon(user.id, code)


@pytest.mark.asyncio
async def test_redeem_requires_user(test_db):
    with pytest.raises(UnauthenticatedError):
        await CouponService(test_db).redeem_coupon(None, "WELCOME-ADMIN")


@pytest.mark.asyncio
async def test_concurrent_redemptions_single_winner(tmp_path):
    """
    Two users redeeming the same code at once: exactly one claims it and
    becomes admin, the other gets an error and keeps their role.
    """
    import database_models  # noqa: F401

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'coupons.db'}")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = make_session_factory(engine)

        async with factory() as setup:
            alice = await create_test_user(setup, email="alice@example.com")
            bob = await create_test_user(setup, email="bob@example.com")
            await _create_coupon(setup, code="RACE")
            user_ids = [alice.id, bob.id]

        async def redeem(user_id):
            async with factory() as session:
                return await CouponService(session).redeem_coupon(user_id, "RACE")

        results = await asyncio.gather(*(redeem(uid) for uid in user_ids), return_exceptions=True)

        winners = [uid for uid, r in zip(user_ids, results) if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], BillingError)

        async with factory() as check:
            coupon = await CouponRepository(check).get_by_code("RACE")
            assert coupon.used_by == winners[0]
            users = {u.id: u.user_type for u in await UserRepository(check).list_users()}
            assert sorted(users.values()) == [USER_TYPE_ADMIN, USER_TYPE_USER]
            assert users[winners[0]] == USER_TYPE_ADMIN
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_create_coupon_normalizes_and_rejects_duplicates(test_db):
    service = CouponService(test_db)

    created = await service.create_coupon(" Launch ", " vip-2024 ", "admin-1")

    assert created["code"] == "VIP-2024"
    assert created["name"] == "Launch"
    assert created["status"] == "new"
    assert created["used_by"] is None

    with pytest.raises(FailedPreconditionError, match="already exists"):
        await service.create_coupon("Again", "VIP-2024", "admin-1")

    with pytest.raises(InvalidArgumentError, match="Coupon code is required"):
        await service.create_coupon("Blank", "  ", "admin-1")


@pytest.mark.asyncio
async def test_list_coupons_reports_status(test_db):
    user = await create_test_user(test_db)
    service = CouponService(test_db)
    await service.create_coupon("One", "ONE", None)
    await service.create_coupon("Two", "TWO", None)
    await service.redeem_coupon(user.id, "ONE")

    coupons = {c["code"]: c for c in await service.list_coupons()}

    assert coupons["ONE"]["status"] == "used"
    assert coupons["ONE"]["used_by"] == user.id
    assert coupons["TWO"]["status"] == "new"


@pytest.mark.asyncio
async def test_delete_coupon(test_db):
    user = await create_test_user(test_db)
    service = CouponService(test_db)
    unused = await service.create_coupon("Unused", "UNUSED", None)
    used = await service.create_coupon("Used", "USED", None)
    await service.redeem_coupon(user.id, "USED")

    await service.delete_coupon(unused["id"])
    assert await CouponRepository(test_db).get_by_id(unused["id"]) is None

    with pytest.raises(FailedPreconditionError, match="Used coupons cannot be deleted"):
        await service.delete_coupon(used["id"])

    with pytest.raises(NotFoundError):
        await service.delete_coupon("missing-id")
