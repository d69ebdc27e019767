from fastapi import FastAPI


from siem_correlator.api.v1.routes_health import router as health_router
from siem_correlator.api.v1.routes_correlation import router as correlation_router

from siem_correlator.core.config import settings
from siem_correlator.core.log_config import setup_logging


setup_logging()

app = FastAPI(
    title="SIEM Correlation Engine",
    version="0.1.0",
    description="Rule-driven correlation of security telemetry into scored, deduplicated incidents.",
)

@app.on_event("startup")
def on_startup() -> None:
    if settings.DB_AUTO_CREATE:
        # Create DB tables if they don't exist (dev only)
        from siem_correlator.db.init_db import init_db

        init_db()

@app.get("/", tags=["root"])
async def root() -> dict:
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
    }


# API v1
app.include_router(health_router, prefix="/api/v1")
app.include_router(correlation_router, prefix="/api/v1")
