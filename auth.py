"""
Account routes and the authentication dependencies used by billing routes
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Header, Depends, Cookie
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from auth_utils import TOKEN_TTL, hash_password, verify_password, create_jwt, decode_jwt
from backend.auth.billing import has_effective_access
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository
from database import get_db
from database_models import USER_TYPE_ADMIN
from utils.security_utils import validate_email, validate_password_strength

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

AUTH_COOKIE = "auth_token"


class SignupRequest(BaseModel):
    email: str
    password: str
    display_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


def _user_to_dict(user) -> dict:
    return {
        "user_id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "user_type": user.user_type,
        "avatar_url": user.avatar_url,
        "is_active": user.is_active,
    }


def _with_auth_cookie(content: dict, token: str, max_age: int) -> JSONResponse:
    response = JSONResponse(content=content)
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=max_age,
    )
    return response


def _signed_in(user_id: str) -> JSONResponse:
    return _with_auth_cookie(
        {"ok": True, "user_id": user_id},
        create_jwt(user_id),
        int(TOKEN_TTL.total_seconds()),
    )


def _extract_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Browser clients send the httpOnly cookie; API consumers send a Bearer header
    if auth_token:
        return auth_token
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


@auth_router.post("/signup")
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Create an account and sign it in. New accounts start without a subscription."""
    if not validate_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    try:
        validate_password_strength(request.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    users = UserRepository(db)
    try:
        if await users.get_user_by_email(request.email):
            raise HTTPException(status_code=400, detail="Email already registered")

        user = await users.create_user({
            "email": request.email,
            "hashed_password": hash_password(request.password),
            "display_name": (request.display_name or "").strip() or None,
        })
        await db.commit()
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Signup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Signup failed")

    logger.info(f"User signed up: {user.id}")
    return _signed_in(user.id)


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await UserRepository(db).get_user_by_email(request.email)
    if not user or not verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")

    logger.info(f"User logged in: {user.id}")
    return _signed_in(user.id)


@auth_router.post("/logout")
async def logout():
    """Clear the auth cookie."""
    return _with_auth_cookie({"ok": True, "message": "Logged out successfully"}, "", 0)


async def get_current_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Resolve the signed-in user from the auth cookie or a Bearer token.

    Raises:
        HTTPException(401): Missing, invalid or expired token, or an unknown
            or inactive user
    """
    token = _extract_token(auth_token, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    try:
        payload = decode_jwt(token)
    except ValueError as e:
        logger.error(f"Cannot verify token: {e}")
        raise HTTPException(status_code=401, detail="Authentication unavailable")
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await UserRepository(db).get_user_by_id(str(payload["sub"]))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")

    return _user_to_dict(user)


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Admin-only routes: coupon management and the subscription overview."""
    if current_user.get("user_type") != USER_TYPE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


@auth_router.get("/me")
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The signed-in user, including whether they currently have access."""
    subscription = await SubscriptionRepository(db).get_by_user_id(current_user["user_id"])
    return {
        "ok": True,
        **current_user,
        "has_access": has_effective_access(current_user["user_type"], subscription),
    }
