from typing import Optional

import httpx

from siem_correlator.core.config import settings
from siem_correlator.schemas.threat_intel import AbuseIPDBData


BASE_URL = "https://api.abuseipdb.com/api/v2/check"


async def fetch_abuseipdb(client: httpx.AsyncClient, ip: str) -> Optional[AbuseIPDBData]:
    """
    Call AbuseIPDB check endpoint.
    Returns None if disabled or the IP has no abuse history.
    Transport / HTTP errors propagate so the caller can retry.
    """
    api_key = settings.ABUSEIPDB_API_KEY
    if not api_key:
        return None

    headers = {"Key": api_key, "Accept": "application/json"}
    params = {
        "ipAddress": ip,
        "maxAgeInDays": 90,
        "verbose": True,
    }

    resp = await client.get(BASE_URL, headers=headers, params=params)
    resp.raise_for_status()
    d = (resp.json() or {}).get("data")
    if not d:
        return None

    score = d.get("abuseConfidenceScore") or 0
    total = d.get("totalReports") or 0
    if score == 0 and total == 0:
        return None

    categories: list[int] = []
    for report in (d.get("reports") or [])[:10]:
        categories.extend(report.get("categories") or [])

    return AbuseIPDBData(
        score=score,
        total_reports=total,
        country=d.get("countryCode"),
        isp=d.get("isp"),
        is_tor=bool(d.get("isTor")),
        last_reported_at=d.get("lastReportedAt"),
        categories=categories,
    )
