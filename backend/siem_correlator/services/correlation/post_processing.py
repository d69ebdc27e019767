# backend/siem_correlator/services/correlation/post_processing.py
"""
Best-effort steps that run after evaluation: rule usage bookkeeping,
narrative generation, persistence and notification.

Every per-item step yields a StepResult; failures are logged, collected
into the RunReport and never stop the remaining items.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from siem_correlator.core.config import settings
from siem_correlator.schemas.correlation import CorrelatedIncident, RunReport, StepFailure
from siem_correlator.schemas.entities import CorrelationRule, Notification, Severity
from siem_correlator.services.alerting.alert_dispatcher import dispatch_alerts
from siem_correlator.services.narrative.narrative_service import NarrativeService
from siem_correlator.services.store.entity_store import EntityStore, EntityStores

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOTIFY_SEVERITIES = {Severity.CRITICAL.value, Severity.HIGH.value}


@dataclass
class StepResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_step(fn: Callable[[], Awaitable[T]], stage: str, item: str) -> StepResult[T]:
    try:
        return StepResult(value=await fn())
    except Exception as e:
        logger.exception("%s step failed for %s", stage, item)
        return StepResult(error=f"{type(e).__name__}: {e}")


def _record(report: RunReport, result: StepResult, stage: str, item: str) -> None:
    if not result.ok:
        report.failed.append(StepFailure(stage=stage, item=item, error=result.error))


# --------------------------------------------------------
# Rule usage
# --------------------------------------------------------
class RuleUsageRecorder:
    """Bumps trigger_count / last_triggered on rules that fired in a run."""

    def __init__(self, rules: EntityStore[CorrelationRule]) -> None:
        self._rules = rules

    def record(self, rule: CorrelationRule, fired: int, at: datetime) -> CorrelationRule:
        return self._rules.update(
            rule.id,
            {"trigger_count": rule.trigger_count + fired, "last_triggered": at},
        )


async def record_rule_usage(
    recorder: RuleUsageRecorder,
    rules: Sequence[CorrelationRule],
    fired_by_rule: Dict[str, int],
    at: datetime,
    report: RunReport,
) -> None:
    for rule in rules:
        fired = fired_by_rule.get(rule.id, 0)
        if not fired:
            continue
        result = await run_step(
            lambda: asyncio.to_thread(recorder.record, rule, fired, at),
            "rule_usage", rule.id,
        )
        _record(report, result, "rule_usage", rule.id)


# --------------------------------------------------------
# Narrative
# --------------------------------------------------------
def merge_narrative(incident: CorrelatedIncident, narrative) -> CorrelatedIncident:
    techniques = list(dict.fromkeys([*incident.mitre_techniques, *narrative.mitre_techniques]))
    return incident.model_copy(update={
        "attack_narrative": narrative.attack_narrative,
        "attack_stage": narrative.attack_stage,
        "recommended_actions": list(narrative.recommended_actions),
        "mitre_techniques": techniques,
    })


def narrative_candidates(incidents: Sequence[CorrelatedIncident]) -> List[int]:
    """Positions of the incidents worth an attack narrative, best first."""
    picked = [
        i for i, inc in enumerate(incidents)
        if inc.fidelity_score >= settings.NARRATIVE_MIN_FIDELITY
        or inc.severity == Severity.CRITICAL.value
    ]
    return picked[:settings.NARRATIVE_MAX_INCIDENTS]


async def apply_narratives(
    incidents: List[CorrelatedIncident],
    narrative: NarrativeService,
    report: RunReport,
) -> List[CorrelatedIncident]:
    if not narrative.enabled:
        return incidents

    out = list(incidents)
    for pos in narrative_candidates(out):
        incident = out[pos]
        result = await run_step(
            lambda: asyncio.wait_for(
                narrative.generate(incident), timeout=settings.NARRATIVE_TIMEOUT_SECONDS
            ),
            "narrative", incident.title,
        )
        _record(report, result, "narrative", incident.title)
        if result.ok and result.value is not None:
            out[pos] = merge_narrative(incident, result.value)
    return out


# --------------------------------------------------------
# Persistence + notification
# --------------------------------------------------------
class IncidentSink:
    def __init__(self, stores: EntityStores) -> None:
        self._incidents = stores.incidents
        self._notifications = stores.notifications

    def persist(self, incident: CorrelatedIncident) -> CorrelatedIncident:
        return self._incidents.create(incident)

    def notify(self, incident: CorrelatedIncident, at: datetime) -> List[str]:
        """Create the in-app notification, then fan out to alert channels."""
        self._notifications.create(
            Notification(
                message=(
                    f"Correlated Incident: {incident.title} "
                    f"({len(incident.sources_involved)} sources)"
                ),
                type="alert",
                link=settings.DASHBOARD_LINK,
                created_at=at,
            )
        )
        return dispatch_alerts(incident)


async def persist_incidents(
    sink: IncidentSink,
    incidents: Sequence[CorrelatedIncident],
    at: datetime,
    report: RunReport,
) -> int:
    saved = 0
    for incident in incidents:
        if incident.fidelity_score < settings.INCIDENT_SAVE_MIN_FIDELITY:
            continue

        result = await run_step(lambda: asyncio.to_thread(sink.persist, incident), "persist", incident.title)
        _record(report, result, "persist", incident.title)
        if not result.ok:
            continue
        saved += 1
        report.succeeded.append(incident.title)

        if incident.severity not in NOTIFY_SEVERITIES:
            continue
        notified = await run_step(lambda: asyncio.to_thread(sink.notify, incident, at), "notify", incident.title)
        _record(report, notified, "notify", incident.title)
        for channel in notified.value or []:
            report.failed.append(
                StepFailure(stage="notify", item=incident.title, error=f"{channel} alert failed")
            )
    return saved
