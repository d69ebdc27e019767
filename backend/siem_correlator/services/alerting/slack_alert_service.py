# backend/siem_correlator/services/alerting/slack_alert_service.py
import logging
import requests

from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.core.config import settings
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


def send_slack_alert(incident: CorrelatedIncident) -> None:
    """
    Simple Slack alert sender using Incoming Webhook URL.

    Configure env:
      SLACK_ALERT_WEBHOOK_URL=https://hooks.slack.com/services/...
    """
    webhook_url = settings.SLACK_ALERT_WEBHOOK_URL
    if not webhook_url:
        logger.info("Slack webhook URL not configured; skipping Slack alert.")
        return

    text_lines = [
        ":link: *Correlated incident detected*",
        f"*Title*: {incident.title}",
        f"*Severity*: `{incident.severity}` (fidelity {incident.fidelity_score}, "
        f"confidence {incident.confidence_score})",
        f"*Key*: `{incident.correlation_type}` = `{incident.correlation_key}`",
        f"*Sources*: {', '.join(incident.sources_involved)}",
    ]

    if incident.threat_intel_matches:
        families = sorted({f for m in incident.threat_intel_matches for f in m.families})
        text_lines.append(f"*Threat intel*: {', '.join(families) or 'match'}")

    if incident.attack_narrative:
        text_lines.append("")
        text_lines.append(incident.attack_narrative)

    if incident.event_chain:
        text_lines.append("")
        text_lines.append("*Timeline:*")
        for e in incident.event_chain[:5]:
            text_lines.append(f"• `{e.severity}` – {e.event_type}: {e.summary or ''}")

    payload = {"text": "\n".join(text_lines)}

    # Raises on failure; the dispatcher decides what a failed channel means
    resp = requests.post(webhook_url, json=jsonable_encoder(payload), timeout=5)
    resp.raise_for_status()
