"""
FastAPI application entry point.
Initializes the FastAPI app, configures logging, and includes the eBay routes.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.routers import auth, cron, ebay
from app.utils.logger import configure_logging

# Configure logging first
configure_logging()
logger = structlog.get_logger()

app = FastAPI(
    title="eBay Marketplace Sync",
    description="Syncs eBay listings, orders, fulfillments and inventory quantities for each tenant",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(ebay.router)
app.include_router(cron.router)  # External scheduler triggers


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    logger.info(
        "eBay Marketplace Sync started",
        ebay_environment=settings.ebay_environment,
        cron_enabled=bool(settings.cron_secret),
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    logger.info("eBay Marketplace Sync shutting down")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "ebay_environment": settings.ebay_environment}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
