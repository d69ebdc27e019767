# backend/siem_correlator/schemas/threat_intel.py
from pydantic import BaseModel
from typing import Any, Optional


class ThreatFoxData(BaseModel):
    families: list[str] = []
    threat_types: list[str] = []
    tags: list[str] = []
    first_seen: Optional[str] = None
    last_seen: Optional[str] = None
    confidence: Optional[int] = None  # mean confidence_level 0–100
    report_count: int = 0


class AbuseIPDBData(BaseModel):
    score: Optional[int] = None  # AbuseConfidenceScore 0–100
    total_reports: Optional[int] = None
    country: Optional[str] = None
    isp: Optional[str] = None
    is_tor: bool = False
    last_reported_at: Optional[str] = None
    categories: list[int] = []


class URLhausData(BaseModel):
    url_count: int = 0
    threats: list[str] = []
    tags: list[str] = []
    first_seen: Optional[str] = None
    reference: Optional[str] = None


class ThreatIntelResult(BaseModel):
    """
    Aggregated verdict for a single indicator across all queried feeds.
    """
    indicator: str
    matched: bool = False
    risk_score: int = 0
    risk_level: Optional[str] = None
    families: list[str] = []
    threat_types: list[str] = []
    sources: list[str] = []
    confidence: Optional[int] = None
    threatfox: Optional[ThreatFoxData] = None
    abuseipdb: Optional[AbuseIPDBData] = None
    urlhaus: Optional[URLhausData] = None
    meta: dict[str, Any] = {}
