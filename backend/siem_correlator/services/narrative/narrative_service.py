# backend/siem_correlator/services/narrative/narrative_service.py
import json
import logging
from typing import Optional

import httpx

from siem_correlator.core.config import settings
from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.schemas.narrative import AttackNarrative

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are a senior security analyst. Analyze the correlated security incident "
    "below and return ONLY a JSON object with exactly four keys:\n"
    '  "attack_narrative": a concise 2-4 sentence description of the attack,\n'
    '  "attack_stage": the most likely kill-chain stage (e.g. "Initial Access"),\n'
    '  "recommended_actions": a list of 3-5 specific remediation steps,\n'
    '  "mitre_techniques": a list of MITRE ATT&CK technique IDs (e.g. "T1110").'
)


def build_incident_prompt(incident: CorrelatedIncident) -> str:
    if incident.threat_intel_matches:
        intel = "; ".join(", ".join(m.families) for m in incident.threat_intel_matches)
    else:
        intel = "None"

    timeline = "\n".join(
        f"- [{e.severity}] {e.event_type}: {e.summary}"
        for e in incident.event_chain[:10]
    )

    return (
        f"{_SYSTEM_PROMPT}\n\n"
        f"Incident: {incident.title}\n"
        f"Severity: {incident.severity}\n"
        f"Sources: {', '.join(incident.sources_involved)}\n"
        f"Event Count: {len(incident.event_chain)}\n"
        f"Time Span: {incident.time_span_minutes} minutes\n"
        f"IPs: {', '.join(incident.related_ips)}\n"
        f"Users: {', '.join(incident.related_users)}\n"
        f"Threat Intel: {intel}\n\n"
        f"Event Timeline:\n{timeline}\n\n"
        "JSON response:"
    )


class NarrativeService:
    """
    Attack narrative generation through an Ollama-compatible LLM endpoint.
    Disabled (returns None) when NARRATIVE_API_URL is not configured.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url if base_url is not None else settings.NARRATIVE_API_URL
        self._model = model or settings.NARRATIVE_MODEL
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    async def generate(self, incident: CorrelatedIncident) -> Optional[AttackNarrative]:
        if not self.enabled:
            return None

        async with httpx.AsyncClient(
            timeout=settings.NARRATIVE_TIMEOUT_SECONDS, transport=self._transport
        ) as client:
            response = await client.post(
                f"{self._base_url.rstrip('/')}/api/generate",
                json={
                    "model": self._model,
                    "prompt": build_incident_prompt(incident),
                    "stream": False,
                    "format": "json",
                },
            )
            response.raise_for_status()

        raw_text = response.json().get("response") or "{}"
        narrative = AttackNarrative.model_validate(json.loads(raw_text))
        logger.debug("Narrative generated for %s (stage=%s)", incident.title, narrative.attack_stage)
        return narrative


narrative_service = NarrativeService()
