from typing import Tuple

from siem_correlator.schemas.threat_intel import ThreatIntelResult
from siem_correlator.services.risk_scoring.risk_utils import severity_from_score


# --------------------------------------------------------
# Feed weights
# --------------------------------------------------------

THREATFOX_HIT = 40
ABUSEIPDB_HIGH_SCORE = 50
ABUSEIPDB_HIT = 30
URLHAUS_HIT = 20
BOTNET_CC_HIT = 20
RANSOMWARE_HIT = 30


def compute_threat_intel_risk(intel: ThreatIntelResult) -> Tuple[int, str]:
    """
    Additive risk over the feeds that matched, capped at 100.
    Returns (score, level).
    """
    score = 0
    if intel.threatfox:
        score += THREATFOX_HIT
    if intel.abuseipdb and (intel.abuseipdb.score or 0) > ABUSEIPDB_HIGH_SCORE:
        score += ABUSEIPDB_HIT
    if intel.urlhaus:
        score += URLHAUS_HIT
    if intel.threatfox and "botnet_cc" in intel.threatfox.threat_types:
        score += BOTNET_CC_HIT
    if any("ransomware" in f.lower() for f in intel.families):
        score += RANSOMWARE_HIT

    score = min(100, score)
    return score, severity_from_score(score)
