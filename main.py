"""
Location vetting backend - billing and subscription API
Stripe checkout, no-card trials, admin coupons and webhook reconciliation
"""

from pathlib import Path
import logging
import traceback

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from auth import auth_router
from backend.utils.responses import error_response
from routers.admin_router import admin_router
from routers.billing_router import billing_router
from routers.coupon_router import coupon_router, admin_coupon_router
from database import init_db
from config.settings import settings, billing_config

# ============================================================================
# LOGGING
# ============================================================================

LOGS_DIR = Path("./logs")
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="Location Vetting API")


def _is_render_env() -> bool:
    return bool(settings.render or settings.render_external_url or settings.render_service_name)


class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    """Log anything a route let escape and answer with the 500 envelope."""
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception on {request.method} {request.url.path}: {e}\n{traceback.format_exc()}")
            return error_response("internal", status=500, message="Internal Server Error")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # HSTS only on Render, where HTTPS is guaranteed
        if _is_render_env():
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response


app.add_middleware(UncaughtExceptionMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# STARTUP CHECKS
# ============================================================================


@app.on_event("startup")
async def check_billing_config_on_startup():
    """Warn about billing credentials that resolved to nothing (non-fatal)."""
    missing = billing_config.missing()
    if missing:
        logger.warning(
            f"Startup check: billing credentials missing for environment "
            f"'{billing_config.environment}': {', '.join(missing)}"
        )
    else:
        logger.info(f"Startup check: billing configured for environment '{billing_config.environment}'")
    if not settings.jwt_secret_key:
        logger.warning("Startup check: JWT_SECRET_KEY is not set; authentication will fail")


@app.on_event("startup")
async def initialize_database():
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
# Webhook router first: Stripe needs the raw body untouched
app.include_router(billing_router)
app.include_router(auth_router)
app.include_router(coupon_router)
app.include_router(admin_coupon_router)
app.include_router(admin_router)


@app.get("/health")
async def health():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
