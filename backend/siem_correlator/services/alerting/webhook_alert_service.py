# backend/siem_correlator/services/alerting/webhook_alert_service.py
import logging
import requests

from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.core.config import settings
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


def send_generic_webhook_alert(incident: CorrelatedIncident) -> None:
    """
    Generic JSON webhook for n8n, SOAR playbooks, custom dashboards, etc.

    Configure env:
      GENERIC_ALERT_WEBHOOK_URL=https://your-endpoint/ingest
    """
    webhook_url = settings.GENERIC_ALERT_WEBHOOK_URL
    if not webhook_url:
        logger.info("Generic webhook URL not configured; skipping generic alert.")
        return

    payload = {
        "type": "correlated_incident",
        "incident": incident.model_dump(),
    }

    # Make it JSON-safe (datetimes → isoformat, enums → values, etc.)
    json_payload = jsonable_encoder(payload)

    resp = requests.post(webhook_url, json=json_payload, timeout=5)
    resp.raise_for_status()
