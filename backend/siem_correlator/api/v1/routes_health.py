from fastapi import APIRouter

from siem_correlator.core.config import settings

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """
    Liveness check plus which optional integrations are configured.
    """
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "integrations": {
            "abuseipdb": bool(settings.ABUSEIPDB_API_KEY),
            "narrative": bool(settings.NARRATIVE_API_URL),
            "slack_alerts": bool(settings.SLACK_ALERT_WEBHOOK_URL),
            "webhook_alerts": bool(settings.GENERIC_ALERT_WEBHOOK_URL),
        },
    }
