from typing import Optional

import httpx

from siem_correlator.core.config import settings
from siem_correlator.schemas.threat_intel import ThreatFoxData


async def fetch_threatfox(client: httpx.AsyncClient, indicator: str) -> Optional[ThreatFoxData]:
    """
    Search ThreatFox (abuse.ch) for a malware IOC.
    Returns None when ThreatFox has no record of the indicator.
    """
    headers = {"Accept": "application/json"}
    if settings.THREATFOX_API_KEY:
        headers["Auth-Key"] = settings.THREATFOX_API_KEY

    resp = await client.post(
        settings.THREATFOX_API_URL,
        headers=headers,
        json={"query": "search_ioc", "search_term": indicator},
    )
    resp.raise_for_status()
    data = resp.json() or {}

    entries = data.get("data")
    if data.get("query_status") != "ok" or not isinstance(entries, list) or not entries:
        return None

    families: dict[str, None] = {}
    threat_types: dict[str, None] = {}
    tags: dict[str, None] = {}
    confidences: list[int] = []
    first_seen: Optional[str] = None
    last_seen: Optional[str] = None

    for entry in entries:
        malware = entry.get("malware")
        if malware and malware != "NA":
            families.setdefault(malware, None)
        if entry.get("threat_type"):
            threat_types.setdefault(entry["threat_type"], None)
        for t in entry.get("tags") or []:
            tags.setdefault(t, None)
        # "YYYY-MM-DD HH:MM:SS UTC" sorts lexically
        if entry.get("first_seen") and (first_seen is None or entry["first_seen"] < first_seen):
            first_seen = entry["first_seen"]
        if entry.get("last_seen") and (last_seen is None or entry["last_seen"] > last_seen):
            last_seen = entry["last_seen"]
        if isinstance(entry.get("confidence_level"), (int, float)):
            confidences.append(entry["confidence_level"])

    return ThreatFoxData(
        families=list(families),
        threat_types=list(threat_types),
        tags=list(tags),
        first_seen=first_seen,
        last_seen=last_seen,
        confidence=round(sum(confidences) / len(confidences)) if confidences else None,
        report_count=len(entries),
    )
