import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from proposal_resolver.api.router import get_pipeline, router as proposals_router, shutdown_pipeline
from proposal_resolver.utils.logger import logger

logger.info("Proposal Resolver starting up...")

app = FastAPI(title="Proposal Resolver", version="0.1.0")

# Parse allowed origins; defaults to none when unset
cors_origins_env = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
logger.info(f"Allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/healthz")
def healthz() -> dict:
    """Health check with cache and on-chain client status."""
    try:
        pipeline = get_pipeline()
        return {
            "status": "ok",
            "cache_entries": len(pipeline.cache),
            "in_flight": pipeline.in_flight,
            "onchain_client": "available" if pipeline.onchain_available() else "unavailable",
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}


@app.on_event("startup")
async def startup_event():
    """Install the handled-error observer on the serving loop."""
    pipeline = get_pipeline()
    pipeline.install_error_observer()
    logger.info("✅ Error observer installed")


@app.on_event("shutdown")
async def shutdown_event():
    await shutdown_pipeline()
    logger.info("Proposal Resolver shut down")


app.include_router(proposals_router)
