# backend/siem_correlator/services/enrichment/threat_intel_service.py
import asyncio
import logging
from ipaddress import ip_address
from typing import Dict, Iterable, List, Optional

import httpx

from siem_correlator.schemas.threat_intel import ThreatIntelResult
from siem_correlator.services.enrichment.core_service.abuseipdb_service import fetch_abuseipdb
from siem_correlator.services.enrichment.core_service.retry import async_retry
from siem_correlator.services.enrichment.core_service.threatfox_service import fetch_threatfox
from siem_correlator.services.enrichment.core_service.urlhaus_service import fetch_urlhaus_host
from siem_correlator.services.risk_scoring.threat_intel_risk import compute_threat_intel_risk

logger = logging.getLogger(__name__)

MAX_INDICATORS_PER_LOOKUP = 50


def _is_public_ip(value: str) -> bool:
    try:
        ip_obj = ip_address(value)
    except ValueError:
        return False
    return not (
        ip_obj.is_private
        or ip_obj.is_loopback
        or ip_obj.is_link_local
        or ip_obj.is_reserved
        or ip_obj.is_multicast
    )


class ThreatIntelService:
    """
    Batch IOC lookup against public threat feeds.

    ThreatFox is always queried; a deep lookup adds AbuseIPDB (public IPs
    only) and URLhaus. A feed failure is recorded in the result's
    meta["errors"] and does not fail the indicator or the batch.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    async def lookup(self, indicators: Iterable[str], deep_lookup: bool = False) -> Dict[str, ThreatIntelResult]:
        unique: List[str] = list(dict.fromkeys(
            str(i).strip() for i in indicators if i and str(i).strip()
        ))[:MAX_INDICATORS_PER_LOOKUP]
        if not unique:
            return {}

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self._lookup_one(client, ioc, deep_lookup) for ioc in unique)
            )

        matched = sum(1 for r in results if r.matched)
        logger.info("Threat intel lookup: %d/%d indicators matched (deep=%s)", matched, len(unique), deep_lookup)
        return {r.indicator: r for r in results}

    async def _lookup_one(self, client: httpx.AsyncClient, ioc: str, deep_lookup: bool) -> ThreatIntelResult:
        intel = ThreatIntelResult(indicator=ioc, meta={"errors": {}})

        # ---- ThreatFox ----
        try:
            intel.threatfox = await async_retry(lambda: fetch_threatfox(client, ioc), attempts=3, base_delay=0.5)
        except Exception as e:
            logger.warning("ThreatFox lookup failed for %s: %s", ioc, e)
            intel.meta["errors"]["threatfox"] = f"{type(e).__name__}: {e}"
        if intel.threatfox:
            intel.sources.append("ThreatFox")

        if deep_lookup:
            # ---- AbuseIPDB ----
            if _is_public_ip(ioc):
                try:
                    intel.abuseipdb = await async_retry(lambda: fetch_abuseipdb(client, ioc), attempts=3, base_delay=0.5)
                except Exception as e:
                    logger.warning("AbuseIPDB lookup failed for %s: %s", ioc, e)
                    intel.meta["errors"]["abuseipdb"] = f"{type(e).__name__}: {e}"
                if intel.abuseipdb:
                    intel.sources.append("AbuseIPDB")

            # ---- URLhaus ----
            try:
                intel.urlhaus = await async_retry(lambda: fetch_urlhaus_host(client, ioc), attempts=2, base_delay=0.5)
            except Exception as e:
                logger.warning("URLhaus lookup failed for %s: %s", ioc, e)
                intel.meta["errors"]["urlhaus"] = f"{type(e).__name__}: {e}"
            if intel.urlhaus:
                intel.sources.append("URLhaus")

        intel.matched = bool(intel.sources)
        if intel.matched:
            if intel.threatfox:
                intel.families = list(intel.threatfox.families)
                intel.threat_types = list(intel.threatfox.threat_types)
            intel.confidence = (
                (intel.threatfox.confidence if intel.threatfox else None)
                or (intel.abuseipdb.score if intel.abuseipdb else None)
            )
            intel.risk_score, intel.risk_level = compute_threat_intel_risk(intel)

        return intel


threat_intel_service = ThreatIntelService()
