from typing import Optional, Sequence

from siem_correlator.schemas.entities import SecurityEvent, Severity
from siem_correlator.services.risk_scoring.risk_utils import round_half_up, severity_weight


# --------------------------------------------------------
# Fidelity: how well corroborated an incident is
# --------------------------------------------------------

SOURCE_POINTS = 15
SOURCE_POINTS_CAP = 45
THREAT_INTEL_POINTS = 25
EVENT_POINTS = 2
EVENT_POINTS_CAP = 20
MULTI_IP_POINTS = 10

# Number of contributing sources that escalates an incident to critical
CRITICAL_SOURCE_COUNT = 4


def compute_fidelity(
    sources: Sequence[str],
    threat_intel_matches: int,
    event_count: int,
    unique_ips: int,
) -> int:
    score = 0
    score += min(len(sources) * SOURCE_POINTS, SOURCE_POINTS_CAP)
    score += THREAT_INTEL_POINTS if threat_intel_matches > 0 else 0
    score += min(event_count * EVENT_POINTS, EVENT_POINTS_CAP)
    score += MULTI_IP_POINTS if unique_ips > 1 else 0
    return min(score, 100)


# --------------------------------------------------------
# Confidence: how certain the detection is
# --------------------------------------------------------

def compute_confidence(events: Sequence[SecurityEvent], source_count: int) -> int:
    if events:
        avg_severity = sum(severity_weight(e.severity) for e in events) / len(events)
    else:
        avg_severity = 0.0
    return min(100, round_half_up(50 + avg_severity * 5 + source_count * 10))


def resolve_output_severity(
    configured: Optional[str],
    threat_intel_matches: int,
    source_count: int,
) -> str:
    """
    Rule severity (default high), escalated to critical when threat intel
    confirms the key or enough independent sources agree.
    """
    if threat_intel_matches > 0 or source_count >= CRITICAL_SOURCE_COUNT:
        return Severity.CRITICAL.value
    return configured or Severity.HIGH.value
