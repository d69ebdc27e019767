# backend/siem_correlator/services/correlation/enrichment.py
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from siem_correlator.schemas.correlation import ThreatIntelMatch
from siem_correlator.schemas.entities import (
    CorrelationKeyType,
    Endpoint,
    EndpointEvent,
    SecurityEvent,
    Severity,
)
from siem_correlator.schemas.threat_intel import ThreatIntelResult
from siem_correlator.services.correlation.indexer import CorrelationIndex

# Data sources that can corroborate an incident
SOURCE_SECURITY_EVENTS = "security_events"
SOURCE_ENDPOINTS = "endpoints"
SOURCE_ENDPOINT_EVENTS = "endpoint_events"
SOURCE_BLOCKED_IPS = "blocked_ips"
SOURCE_THREAT_INTEL = "threat_intel"

THREAT_INTEL_SEVERITIES = {Severity.HIGH.value, Severity.CRITICAL.value}


@dataclass
class CandidateEnrichment:
    sources: List[str] = field(default_factory=lambda: [SOURCE_SECURITY_EVENTS])
    endpoints: List[Endpoint] = field(default_factory=list)
    endpoint_events: List[EndpointEvent] = field(default_factory=list)
    threat_intel_matches: List[ThreatIntelMatch] = field(default_factory=list)

    def add_source(self, source: str) -> None:
        if source not in self.sources:
            self.sources.append(source)


def select_threat_intel_indicators(events: Sequence[SecurityEvent], limit: int) -> List[str]:
    """Distinct IPs seen on high/critical events, in event order, capped at `limit`."""
    seen: Dict[str, None] = {}
    for e in events:
        if e.ip_address and e.severity in THREAT_INTEL_SEVERITIES:
            seen.setdefault(e.ip_address, None)
    return list(seen)[:limit]


def enrich_candidate(
    key_type: CorrelationKeyType,
    key_value: str,
    index: CorrelationIndex,
    threat_intel: Mapping[str, ThreatIntelResult],
) -> CandidateEnrichment:
    """
    Corroborate an IP candidate with endpoint telemetry, block-list
    membership and threat intel. User candidates keep security_events only.
    """
    enrichment = CandidateEnrichment()
    if key_type != CorrelationKeyType.IP_ADDRESS:
        return enrichment

    endpoints = index.ip_to_endpoints.get(key_value) or []
    if endpoints:
        enrichment.add_source(SOURCE_ENDPOINTS)
        enrichment.endpoints.extend(endpoints)

        ep_events = index.endpoint_events_for(ep.id for ep in endpoints)
        if ep_events:
            enrichment.add_source(SOURCE_ENDPOINT_EVENTS)
            enrichment.endpoint_events.extend(ep_events)

    if key_value in index.blocked_ips:
        enrichment.add_source(SOURCE_BLOCKED_IPS)

    intel = threat_intel.get(key_value)
    if intel is not None and intel.matched:
        enrichment.add_source(SOURCE_THREAT_INTEL)
        enrichment.threat_intel_matches.append(
            ThreatIntelMatch(
                indicator=key_value,
                source=", ".join(intel.sources) or "Unknown",
                families=list(intel.families),
            )
        )

    return enrichment
