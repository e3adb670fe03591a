import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import admin_orders, auth, orders, payment, products, refunds
from app.config import settings
from app.db_init import init_db, seed_admin
from app.models import get_db
from app.services.solana_service import is_valid_wallet_address
from app.webhooks import payment_callback

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("app.startup")


def _is_localhost(host: str | None) -> bool:
    return host in {"localhost", "127.0.0.1"}


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _strip_wrapping_quotes(value: str) -> str:
    stripped = value.strip()
    if len(stripped) >= 2 and stripped[0] == stripped[-1] and stripped[0] in {"'", '"'}:
        return stripped[1:-1].strip()
    return stripped


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [_strip_wrapping_quotes(origin) for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    host = parsed.hostname
    db_name = parsed.path.lstrip("/")
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or postgresql+psycopg://).")
    if scheme == "sqlite":
        if settings.IS_PRODUCTION:
            raise RuntimeError("SQLite DATABASE_URL is not supported in production, use PostgreSQL.")
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not host:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not db_name:
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _db_url_diagnostics(database_url: str) -> str:
    parsed = urlparse(database_url)
    host = parsed.hostname or "<missing>"
    port = parsed.port or "<missing>"
    db_name = parsed.path.lstrip("/") or "<missing>"
    scheme = parsed.scheme or "<missing>"

    tips = []
    if scheme in {"postgres", "postgresql"}:
        tips.append("URL scheme is fine; app normalizes it to postgresql+psycopg internally.")
    if settings.IS_PRODUCTION and _is_localhost(parsed.hostname):
        tips.append("Host points to localhost in production.")
    if not tips:
        tips.append("URL structure looks valid; check network access, DB credentials, and DB service status.")

    return f"scheme={scheme}, host={host}, port={port}, database={db_name}; tips={' | '.join(tips)}"


def _validate_payment_settings(errors: list[str], warnings: list[str]) -> None:
    shop_wallet = settings.SHOP_WALLET_ADDRESS
    mint = settings.ELURC_TOKEN_ADDRESS
    if not shop_wallet or not mint:
        message = "SHOP_WALLET_ADDRESS and ELURC_TOKEN_ADDRESS must be set to accept payments."
        (errors if settings.IS_PRODUCTION else warnings).append(message)
    if shop_wallet and not is_valid_wallet_address(shop_wallet):
        errors.append("SHOP_WALLET_ADDRESS is not a valid Solana address.")
    if mint and not is_valid_wallet_address(mint):
        errors.append("ELURC_TOKEN_ADDRESS is not a valid Solana address.")
    if not settings.PAYMENT_WEBHOOK_SECRET:
        message = "PAYMENT_WEBHOOK_SECRET is not set; payment webhooks are not authenticated."
        (errors if settings.IS_PRODUCTION else warnings).append(message)
    if settings.PAYMENT_TOLERANCE_LAMPORTS < 0:
        errors.append("PAYMENT_TOLERANCE_LAMPORTS must not be negative.")


def _validate_required_env_for_runtime() -> None:
    errors: list[str] = []
    warnings: list[str] = []

    jwt_secret = settings.JWT_SECRET.strip()
    if not jwt_secret:
        errors.append("JWT_SECRET is required.")
    elif settings.IS_PRODUCTION and jwt_secret == "change-me-in-production":
        errors.append("JWT_SECRET uses insecure default value in production.")

    base_url = _strip_wrapping_quotes(settings.BASE_URL)
    if not _is_http_url(base_url):
        errors.append("BASE_URL must be an absolute http(s) URL, e.g. https://shop.example.com")
    elif settings.IS_PRODUCTION and _is_localhost(urlparse(base_url).hostname):
        errors.append("BASE_URL points to localhost in production.")

    origins = _get_cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")
        if settings.IS_PRODUCTION:
            localhost_origins = [origin for origin in origins if _is_localhost(urlparse(origin).hostname)]
            if localhost_origins:
                warnings.append(f"CORS_ORIGINS includes localhost in production: {', '.join(localhost_origins)}")

    _validate_payment_settings(errors, warnings)

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    database_url = "<unavailable>"
    logger.info("Application startup initiated.")
    try:
        database_url = settings.DATABASE_URL
        logger.info("DATABASE_URL diagnostics at startup: %s", _db_url_diagnostics(database_url))
        _validate_database_url_for_runtime(database_url)
        _validate_required_env_for_runtime()
        init_db()
    except Exception as exc:
        diagnostics = (
            _db_url_diagnostics(database_url)
            if database_url != "<unavailable>"
            else "DATABASE_URL unavailable (missing or unreadable)."
        )
        logger.exception(
            "Database initialization failed: %s. DATABASE_URL diagnostics: %s",
            str(exc),
            diagnostics,
        )
        raise
    db = next(get_db())
    try:
        seed_admin(db)
    finally:
        db.close()
    logger.info("Application startup completed successfully.")
    yield


app = FastAPI(
    title="ELURC Market API",
    description=(
        "Storefront and back-office API for a grocery marketplace priced in ELURC. "
        "Use **Authorize** with the token from `POST /api/auth/login` for admin endpoints."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Login, token refresh and staff accounts (JWT)."},
        {"name": "Catalog", "description": "Products and categories."},
        {"name": "Orders", "description": "Checkout, order history and order status."},
        {"name": "Admin Orders", "description": "Order management, fulfillment and payment review (admin)."},
        {"name": "Refunds", "description": "Refund records (admin)."},
        {"name": "Payments", "description": "Payment status and wallet balance."},
        {"name": "Webhooks", "description": "Called by the ledger verifier."},
    ],
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        **openapi_schema.get("components", {}).get("securitySchemes", {}),
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT from POST /api/auth/login",
        },
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(products.categories_router, prefix="/api/categories", tags=["Catalog"])
app.include_router(products.router, prefix="/api/products", tags=["Catalog"])
# Public order routes first: "/history" must not be captured by the admin "/{order_id}" route.
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(admin_orders.router, prefix="/api/orders", tags=["Admin Orders"])
app.include_router(refunds.router, prefix="/api/admin/refunds", tags=["Refunds"])
app.include_router(payment.router, prefix="/api/payment", tags=["Payments"])
app.include_router(payment.wallet_router, prefix="/api/wallet", tags=["Payments"])
app.include_router(payment_callback.router, prefix="/webhooks", tags=["Webhooks"])


@app.get("/")
def root():
    return {"status": "ok", "service": "ELURC Market API"}


@app.get("/health")
def health():
    return {"status": "ok"}
