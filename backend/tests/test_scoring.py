import pytest

from siem_correlator.schemas.threat_intel import (
    AbuseIPDBData,
    ThreatFoxData,
    ThreatIntelResult,
    URLhausData,
)
from siem_correlator.services.risk_scoring.incident_risk import (
    compute_confidence,
    compute_fidelity,
    resolve_output_severity,
)
from siem_correlator.services.risk_scoring.risk_utils import (
    round_half_up,
    severity_from_score,
    severity_weight,
)
from siem_correlator.services.risk_scoring.threat_intel_risk import compute_threat_intel_risk


def test_severity_weight_is_case_insensitive_and_unknown_weighs_zero():
    assert severity_weight("CRITICAL") == 5
    assert severity_weight("info") == 1
    assert severity_weight("bogus") == 0
    assert severity_weight(None) == 0


def test_round_half_up():
    assert round_half_up(62.5) == 63
    assert round_half_up(81.67) == 82
    assert round_half_up(2.4) == 2


@pytest.mark.parametrize(
    "score, level",
    [(100, "critical"), (70, "critical"), (69, "high"), (50, "high"), (30, "medium"), (29, "low"), (0, "low")],
)
def test_severity_from_score(score, level):
    assert severity_from_score(score) == level


# --------------------------------------------------------
# Fidelity
# --------------------------------------------------------
def test_fidelity_single_source_three_events():
    assert compute_fidelity(["security_events"], 0, 3, 1) == 21


def test_fidelity_caps_source_and_event_terms():
    sources = ["security_events", "endpoints", "endpoint_events", "blocked_ips", "threat_intel"]

    # 45 (capped) + 25 + 20 (capped) + 10
    assert compute_fidelity(sources, 1, 40, 3) == 100


def test_fidelity_three_sources():
    assert compute_fidelity(["security_events", "endpoints", "endpoint_events"], 0, 3, 1) == 51


def test_fidelity_multi_ip_bonus():
    assert compute_fidelity(["security_events"], 0, 2, 2) == 15 + 4 + 10


# --------------------------------------------------------
# Confidence
# --------------------------------------------------------
def test_confidence_uses_average_event_severity(make_event):
    events = [make_event(severity="high"), make_event(severity="high"), make_event(severity="critical")]

    # 50 + (13 / 3) * 5 + 10 = 81.67
    assert compute_confidence(events, 1) == 82


def test_confidence_unknown_severity_counts_as_zero(make_event):
    assert compute_confidence([make_event(severity="weird"), make_event(severity="weird")], 1) == 60


def test_confidence_is_capped(make_event):
    events = [make_event(severity="critical")] * 3

    assert compute_confidence(events, 5) == 100


# --------------------------------------------------------
# Output severity
# --------------------------------------------------------
def test_output_severity_defaults_to_high():
    assert resolve_output_severity(None, 0, 1) == "high"
    assert resolve_output_severity("medium", 0, 3) == "medium"


def test_output_severity_escalates_on_threat_intel_or_four_sources():
    assert resolve_output_severity("low", 1, 2) == "critical"
    assert resolve_output_severity("low", 0, 4) == "critical"


# --------------------------------------------------------
# Threat intel risk
# --------------------------------------------------------
def test_threat_intel_risk_no_feeds():
    assert compute_threat_intel_risk(ThreatIntelResult(indicator="1.2.3.4")) == (0, "low")


def test_threat_intel_risk_threatfox_botnet():
    intel = ThreatIntelResult(
        indicator="1.2.3.4",
        threatfox=ThreatFoxData(families=["Cobalt Strike"], threat_types=["botnet_cc"]),
        families=["Cobalt Strike"],
    )

    assert compute_threat_intel_risk(intel) == (60, "high")


def test_threat_intel_risk_low_abuse_score_adds_nothing():
    intel = ThreatIntelResult(indicator="1.2.3.4", abuseipdb=AbuseIPDBData(score=50, total_reports=3))

    assert compute_threat_intel_risk(intel) == (0, "low")


def test_threat_intel_risk_is_capped():
    intel = ThreatIntelResult(
        indicator="1.2.3.4",
        threatfox=ThreatFoxData(families=["LockBit Ransomware"], threat_types=["botnet_cc"]),
        abuseipdb=AbuseIPDBData(score=95, total_reports=40),
        urlhaus=URLhausData(url_count=2),
        families=["LockBit Ransomware"],
    )

    assert compute_threat_intel_risk(intel) == (100, "critical")
