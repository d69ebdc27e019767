# backend/siem_correlator/services/correlation/assembler.py
from typing import Dict, List, Sequence

from siem_correlator.schemas.correlation import CorrelatedIncident, EventChainEntry
from siem_correlator.schemas.entities import (
    CorrelationKeyType,
    CorrelationRule,
    EndpointEvent,
    SecurityEvent,
)
from siem_correlator.services.correlation.enrichment import (
    SOURCE_ENDPOINT_EVENTS,
    SOURCE_SECURITY_EVENTS,
    CandidateEnrichment,
)
from siem_correlator.services.risk_scoring.incident_risk import (
    compute_confidence,
    compute_fidelity,
    resolve_output_severity,
)
from siem_correlator.services.risk_scoring.risk_utils import round_half_up, severity_weight

MAX_CHAIN_SECURITY_EVENTS = 20
MAX_CHAIN_ENDPOINT_EVENTS = 10
SUMMARY_MAX_CHARS = 100

KEY_LABELS = {
    CorrelationKeyType.IP_ADDRESS: "ip",
    CorrelationKeyType.USER_EMAIL: "user",
}


def _distinct(values) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def _endpoint_summary(e: EndpointEvent) -> str:
    if e.description:
        return e.description[:SUMMARY_MAX_CHARS]
    return f"{e.type}: {e.process_name or e.file_path or ''}"


def _most_recent(items: Sequence, stamp, limit: int) -> list:
    return sorted(items, key=stamp, reverse=True)[:limit]


def build_event_chain(
    events: Sequence[SecurityEvent],
    endpoint_events: Sequence[EndpointEvent],
) -> List[EventChainEntry]:
    chain = [
        EventChainEntry(
            source=SOURCE_SECURITY_EVENTS,
            event_id=e.id,
            event_type=e.event_type,
            severity=e.severity,
            timestamp=e.created_date,
            summary=e.message[:SUMMARY_MAX_CHARS] if e.message else None,
        )
        for e in _most_recent(events, lambda e: e.created_date, MAX_CHAIN_SECURITY_EVENTS)
    ]
    chain.extend(
        EventChainEntry(
            source=SOURCE_ENDPOINT_EVENTS,
            event_id=e.id,
            event_type=e.type,
            severity=e.severity,
            timestamp=e.timestamp,
            summary=_endpoint_summary(e),
        )
        for e in _most_recent(endpoint_events, lambda e: e.timestamp, MAX_CHAIN_ENDPOINT_EVENTS)
    )
    chain.sort(key=lambda entry: entry.timestamp)
    return chain


def chain_time_span_minutes(chain: Sequence[EventChainEntry]) -> int:
    if len(chain) <= 1:
        return 0
    seconds = (chain[-1].timestamp - chain[0].timestamp).total_seconds()
    return round_half_up(seconds / 60)


def build_incident(
    rule: CorrelationRule,
    key_type: CorrelationKeyType,
    key_value: str,
    events: Sequence[SecurityEvent],
    enrichment: CandidateEnrichment,
) -> CorrelatedIncident:
    """Score a surviving candidate and assemble its incident record."""
    related_ips = _distinct(e.ip_address for e in events)
    intel_count = len(enrichment.threat_intel_matches)

    fidelity = compute_fidelity(
        enrichment.sources,
        intel_count,
        len(events),
        len(related_ips),
    )
    confidence = compute_confidence(events, len(enrichment.sources))
    severity = resolve_output_severity(
        rule.output_severity, intel_count, len(enrichment.sources)
    )

    chain = build_event_chain(events, enrichment.endpoint_events)
    label = KEY_LABELS[key_type]

    return CorrelatedIncident(
        rule_id=rule.id,
        rule_name=rule.name,
        title=f"{rule.name}: {key_value}",
        description=rule.description or f"Correlated activity detected for {label} {key_value}",
        severity=severity,
        confidence_score=confidence,
        fidelity_score=fidelity,
        correlation_key=key_value,
        correlation_type=key_type.value,
        sources_involved=list(enrichment.sources),
        event_chain=chain,
        related_ips=related_ips,
        related_users=_distinct(e.user_email for e in events),
        related_endpoints=[ep.hostname for ep in enrichment.endpoints],
        threat_intel_matches=list(enrichment.threat_intel_matches),
        mitre_techniques=list(rule.mitre_techniques),
        time_span_minutes=chain_time_span_minutes(chain),
    )


def sort_incidents(incidents: Sequence[CorrelatedIncident]) -> List[CorrelatedIncident]:
    """Most severe first; higher fidelity breaks ties."""
    return sorted(
        incidents,
        key=lambda i: (severity_weight(i.severity), i.fidelity_score),
        reverse=True,
    )


def count_by_rule(incidents: Sequence[CorrelatedIncident]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for incident in incidents:
        counts[incident.rule_id] = counts.get(incident.rule_id, 0) + 1
    return counts
