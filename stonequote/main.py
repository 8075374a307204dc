from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .cache import CalculationCache
from .calculators.join_estimator import HeuristicJoinEstimator
from .config import settings
from .database import engine, Base, SessionLocal
from .logging_config import setup_logging
from .pricing_engine import PricingEngine
from .routers import pricing, quotes, unit_blocks

setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = logging.getLogger("stonequote")

# Create tables (handles new tables but won't add columns to existing ones)
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="StoneQuote Pricing Engine",
    description="Quote pricing for stone benchtop fabrication",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One engine per process: worker pool, result cache and in-flight table are shared
app.state.engine = PricingEngine(
    cache=(CalculationCache(settings.CALCULATION_CACHE_TTL_SECONDS)
           if settings.CALCULATION_CACHE_ENABLED else None),
    max_workers=settings.CALCULATION_WORKERS,
    join_estimator=HeuristicJoinEstimator(settings.STANDARD_SLAB_LENGTH_MM),
    default_waste_factor=settings.DEFAULT_WASTE_FACTOR,
)

# API routes
app.include_router(quotes.router, prefix="/api")
app.include_router(pricing.router, prefix="/api")
app.include_router(unit_blocks.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "stonequote"}


@app.on_event("startup")
def auto_seed():
    """Auto-seed default pricing tables on first run."""
    db = SessionLocal()
    try:
        seeded = pricing.seed_defaults(db)
        if seeded:
            logger.info("Seeded %d default pricing rows", seeded)
    finally:
        db.close()


@app.on_event("shutdown")
def stop_engine():
    app.state.engine.shutdown()
