# backend/siem_correlator/services/alerting/alert_dispatcher.py
import logging
from typing import List

from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.services.alerting.slack_alert_service import send_slack_alert
from siem_correlator.services.alerting.webhook_alert_service import send_generic_webhook_alert

logger = logging.getLogger(__name__)

ALERT_SEVERITIES = ("high", "critical")


def dispatch_alerts(incident: CorrelatedIncident) -> List[str]:
    """
    Central place to decide *when* to alert and which channels to use.
    Only HIGH / CRITICAL incidents alert. Returns the channels that failed;
    a failing channel never blocks the others.
    """
    if incident.severity not in ALERT_SEVERITIES:
        logger.info(
            "Severity %s below alert threshold; no alerts sent.", incident.severity
        )
        return []

    logger.info(
        "Dispatching alerts for incident %s (severity=%s)",
        incident.title,
        incident.severity,
    )

    failed: List[str] = []

    # Fan-out to individual channels
    try:
        send_slack_alert(incident)
    except Exception:
        logger.exception("Slack alert failed.")
        failed.append("slack")

    try:
        send_generic_webhook_alert(incident)
    except Exception:
        logger.exception("Generic webhook alert failed.")
        failed.append("webhook")

    return failed
