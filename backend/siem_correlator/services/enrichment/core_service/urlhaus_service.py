from typing import Optional

import httpx

from siem_correlator.core.config import settings
from siem_correlator.schemas.threat_intel import URLhausData


async def fetch_urlhaus_host(client: httpx.AsyncClient, host: str) -> Optional[URLhausData]:
    """
    Look up a host (IP or domain) in URLhaus.
    Returns None if the host has no malicious URLs on record.
    """
    resp = await client.post(settings.URLHAUS_API_URL, data={"host": host})
    resp.raise_for_status()
    data = resp.json() or {}

    urls = data.get("urls") or []
    if data.get("query_status") != "ok" or not urls:
        return None

    threats: dict[str, None] = {}
    tags: dict[str, None] = {}
    for u in urls:
        if u.get("threat"):
            threats.setdefault(u["threat"], None)
        for t in u.get("tags") or []:
            tags.setdefault(t, None)

    return URLhausData(
        url_count=len(urls),
        threats=list(threats),
        tags=list(tags),
        first_seen=data.get("firstseen"),
        reference=data.get("urlhaus_reference"),
    )
