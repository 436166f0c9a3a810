"""
Channel-Fit Intelligence Engine
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.logger import log, safe_error
from app import __version__

# Import routers
from app.api import health, channel_fit

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    from app.models.base import init_db, SessionLocal
    try:
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {safe_error(e)}")

    # Engine construction fails fast on a missing pseudonym secret
    from app.services.channel_fit import ChannelFitEngine
    engine = ChannelFitEngine.from_settings(settings, SessionLocal)
    app.state.channel_fit_engine = engine
    log.info("Channel-fit engine ready")

    # Nightly benchmark warm-up
    from app.scheduler import start_scheduler, stop_scheduler
    if settings.enable_benchmark_warmup:
        try:
            start_scheduler(engine)
        except Exception as e:
            log.error(f"Scheduler startup error: {safe_error(e)}")

    yield

    # Shutdown
    stop_scheduler()
    engine.close()
    app.state.channel_fit_engine = None
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Channel-Product Fit Intelligence

    For each product a seller lists on several marketplaces:
    - Scores how well the product fits each marketplace (0-100, with confidence)
    - Recommends where to expand, restock, reprice or deprioritize
    - Benchmarks against k-anonymous, pseudonymised cross-seller demand

    Reads the unified order, product and connection tables populated by the
    marketplace sync adapters.
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Gzip compression
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(channel_fit.router)


@app.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    """Block all crawlers"""
    return "User-agent: *\nDisallow: /\n"
