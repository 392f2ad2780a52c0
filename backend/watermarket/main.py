"""Water rights marketplace — FastAPI Application Entry Point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from watermarket import __version__
from watermarket.config import settings
from watermarket.database import engine, Base
from watermarket.middleware.rate_limit import limiter
from watermarket.routers import admin, auth, listings, magic_link, trades
import watermarket.models  # noqa: F401  (registers tables on Base)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create all tables on startup
Base.metadata.create_all(bind=engine)

# ── CORS origins from env (supports dev localhost + production domain) ──────
_cors_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]

app = FastAPI(
    title="Water Market",
    description="Listings, auctions and negotiated trades of water rights.",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router)
app.include_router(listings.router)
app.include_router(trades.router)
app.include_router(magic_link.router)
app.include_router(admin.router)

if not settings.RESEND_API_KEY:
    logger.warning("RESEND_API_KEY is not set; outbound email will be skipped")


@app.get("/")
def root():
    return {
        "name": "Water Market API",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health")
def health():
    return {"status": "ok"}
