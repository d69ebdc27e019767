# backend/siem_correlator/services/correlation/correlation_engine.py
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from siem_correlator.core.config import settings
from siem_correlator.schemas.correlation import CorrelationRunResponse, RunReport
from siem_correlator.schemas.entities import SecurityEvent
from siem_correlator.schemas.threat_intel import ThreatIntelResult
from siem_correlator.services.correlation.assembler import count_by_rule, sort_incidents
from siem_correlator.services.correlation.enrichment import (
    SOURCE_THREAT_INTEL,
    select_threat_intel_indicators,
)
from siem_correlator.services.correlation.indexer import CorrelationIndex
from siem_correlator.services.correlation.loader import load_snapshot
from siem_correlator.services.correlation.post_processing import (
    IncidentSink,
    RuleUsageRecorder,
    apply_narratives,
    persist_incidents,
    record_rule_usage,
)
from siem_correlator.services.correlation.rule_engine import RuleEvaluator, rule_evaluator
from siem_correlator.services.enrichment.threat_intel_service import (
    ThreatIntelService,
    threat_intel_service,
)
from siem_correlator.services.narrative.narrative_service import (
    NarrativeService,
    narrative_service,
)
from siem_correlator.services.store.entity_store import EntityStores

logger = logging.getLogger(__name__)


class CorrelationEngine:
    """
    One correlation run, end to end:

      1. Load security events, endpoints, endpoint events, blocked IPs and
         enabled rules concurrently, narrowed to the time window
      2. Build the per-run correlation index
      3. Batch threat-intel lookup for IPs seen on high/critical events
      4. Evaluate rules -> candidate incidents (deduplicated per rule/key)
      5. Sort by severity, then fidelity
      6. Record rule usage
      7. Attack narratives for the top incidents
      8. Persist qualifying incidents and notify on high/critical

    Steps 1-5 decide the result; a load failure aborts the run. Steps 6-8
    are best-effort and report per-item failures instead of raising.
    """

    def __init__(
        self,
        stores: EntityStores,
        threat_intel: ThreatIntelService = threat_intel_service,
        narrative: NarrativeService = narrative_service,
        evaluator: RuleEvaluator = rule_evaluator,
    ) -> None:
        self.stores = stores
        self.threat_intel = threat_intel
        self.narrative = narrative
        self.evaluator = evaluator

    async def run(
        self,
        time_window_hours: float = 1,
        rule_ids: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> CorrelationRunResponse:
        now = now or datetime.now(timezone.utc)
        report = RunReport()
        unavailable: List[str] = []

        # 1-2) Load + index
        snapshot = await load_snapshot(self.stores, time_window_hours, rule_ids, now=now)
        index = CorrelationIndex.build(snapshot)

        # 3) Threat intel
        threat_intel = await self._lookup_threat_intel(snapshot.security_events, unavailable)

        # 4-5) Evaluate + rank
        incidents = sort_incidents(
            self.evaluator.evaluate(snapshot.rules, index, threat_intel)
        )
        logger.info(
            "Correlation run: %d rule(s) produced %d incident(s)",
            len(snapshot.rules), len(incidents),
        )

        # 6) Rule usage
        await record_rule_usage(
            RuleUsageRecorder(self.stores.rules),
            snapshot.rules,
            count_by_rule(incidents),
            now,
            report,
        )

        # 7) Narratives
        incidents = await apply_narratives(incidents, self.narrative, report)

        # 8) Persist + notify
        saved = await persist_incidents(IncidentSink(self.stores), incidents, now, report)

        if report.failed:
            logger.warning("Correlation run finished with %d failed step(s)", len(report.failed))

        return CorrelationRunResponse(
            success=True,
            incidents_found=len(incidents),
            incidents_saved=saved,
            top_incidents=incidents[:settings.TOP_INCIDENTS_LIMIT],
            unavailable_sources=unavailable,
            report=report,
            generated_at=now,
        )

    async def _lookup_threat_intel(
        self,
        events: Sequence[SecurityEvent],
        unavailable: List[str],
    ) -> Dict[str, ThreatIntelResult]:
        indicators = select_threat_intel_indicators(events, settings.THREAT_INTEL_MAX_INDICATORS)
        if not indicators:
            return {}
        try:
            return await asyncio.wait_for(
                self.threat_intel.lookup(indicators, deep_lookup=True),
                timeout=settings.THREAT_INTEL_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.warning("Threat intel lookup unavailable (%s: %s); continuing without it", type(e).__name__, e)
            unavailable.append(SOURCE_THREAT_INTEL)
            return {}
