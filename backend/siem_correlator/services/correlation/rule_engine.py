# backend/siem_correlator/services/correlation/rule_engine.py
"""
Rule evaluation over a request-scoped CorrelationIndex.

For every enabled rule (ascending priority) and every candidate correlation
key the evaluator runs the same narrowing pipeline:

  gather -> conditions -> threshold -> time window -> >= 2 events
         -> sequence (optional) -> enrich -> score -> incident

Evaluation is pure: no I/O, no rule bookkeeping. Rule usage counters are
recorded afterwards by the post-processing step.
"""
import logging
from datetime import timedelta
from typing import List, Mapping, Optional, Sequence, Set, Tuple

from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.schemas.entities import (
    CorrelationKeyType,
    CorrelationRule,
    RuleThreshold,
    SecurityEvent,
    SequenceStep,
)
from siem_correlator.schemas.threat_intel import ThreatIntelResult
from siem_correlator.services.correlation.assembler import build_incident
from siem_correlator.services.correlation.conditions import get_nested_value, match_condition
from siem_correlator.services.correlation.enrichment import (
    SOURCE_SECURITY_EVENTS,
    enrich_candidate,
)
from siem_correlator.services.correlation.indexer import CorrelationIndex
from siem_correlator.services.correlation.loader import rule_priority
from siem_correlator.services.risk_scoring.risk_utils import severity_weight

logger = logging.getLogger(__name__)

DEFAULT_TIME_WINDOW_MINUTES = 15
MIN_CORRELATED_EVENTS = 2
PATTERN_SEQUENCE = "sequence"

DedupKey = Tuple[str, CorrelationKeyType, str]


def candidate_keys(rule: CorrelationRule, index: CorrelationIndex) -> List[Tuple[CorrelationKeyType, str]]:
    declared = set(rule.correlation_keys)
    if not declared & {k.value for k in CorrelationKeyType}:
        declared = {CorrelationKeyType.IP_ADDRESS.value}

    keys: List[Tuple[CorrelationKeyType, str]] = []
    if CorrelationKeyType.IP_ADDRESS.value in declared:
        keys.extend((CorrelationKeyType.IP_ADDRESS, ip) for ip in index.ip_to_events)
    if CorrelationKeyType.USER_EMAIL.value in declared:
        keys.extend((CorrelationKeyType.USER_EMAIL, user) for user in index.user_to_events)
    return keys


def gather_events(key_type: CorrelationKeyType, key_value: str, index: CorrelationIndex) -> List[SecurityEvent]:
    if key_type == CorrelationKeyType.IP_ADDRESS:
        return list(index.ip_to_events.get(key_value) or [])
    return list(index.user_to_events.get(key_value) or [])


def apply_conditions(rule: CorrelationRule, events: List[SecurityEvent]) -> Optional[List[SecurityEvent]]:
    """
    Conditions narrow the running set in order: each one filters the output
    of the previous one. A required condition matching nothing rejects the
    candidate (None); an optional one matching nothing is ignored.
    """
    matched = events
    for cond in rule.conditions:
        if cond.source != SOURCE_SECURITY_EVENTS:
            continue
        filtered = [
            e for e in matched
            if match_condition(get_nested_value(e, cond.field), cond.operator, cond.value)
        ]
        if cond.required and not filtered:
            return None
        if filtered:
            matched = filtered
    return matched


def passes_threshold(threshold: Optional[RuleThreshold], events: Sequence[SecurityEvent]) -> bool:
    if threshold is None:
        return True
    if threshold.count and len(events) < threshold.count:
        return False
    if threshold.unique_field and threshold.unique_count:
        unique_values = set()
        for e in events:
            value = get_nested_value(e, threshold.unique_field)
            if value:
                unique_values.add(str(value))
        if len(unique_values) < threshold.unique_count:
            return False
    return True


def enforce_time_window(events: Sequence[SecurityEvent], window_minutes: float) -> List[SecurityEvent]:
    """
    Sort by time; if the span is wider than the window, keep only the events
    within `window_minutes` of the newest one.
    """
    ordered = sorted(events, key=lambda e: e.created_date)
    if len(ordered) < 2:
        return ordered
    window = timedelta(minutes=window_minutes)
    newest = ordered[-1].created_date
    if newest - ordered[0].created_date <= window:
        return ordered
    cutoff = newest - window
    return [e for e in ordered if e.created_date >= cutoff]


def _step_matches(step: SequenceStep, event: SecurityEvent) -> bool:
    if step.event_type and step.event_type.lower() not in (event.event_type or "").lower():
        return False
    if step.severity_min and severity_weight(event.severity) < severity_weight(step.severity_min):
        return False
    return True


def match_sequence(steps: Sequence[SequenceStep], events: Sequence[SecurityEvent]) -> Optional[List[SecurityEvent]]:
    """
    Single forward pass, no backtracking. Returns the events that satisfied
    each step in order, or None when the sequence is incomplete.
    """
    matched: List[SecurityEvent] = []
    for event in sorted(events, key=lambda e: e.created_date):
        if len(matched) == len(steps):
            break
        step = steps[len(matched)]
        if not _step_matches(step, event):
            continue
        if matched and step.max_gap_minutes:
            gap = event.created_date - matched[-1].created_date
            if gap > timedelta(minutes=step.max_gap_minutes):
                continue
        matched.append(event)

    if len(matched) < len(steps):
        return None
    return matched


class RuleEvaluator:
    """
    Produces at most one CorrelatedIncident per (rule, correlation key).
    """

    def evaluate(
        self,
        rules: Sequence[CorrelationRule],
        index: CorrelationIndex,
        threat_intel: Optional[Mapping[str, ThreatIntelResult]] = None,
    ) -> List[CorrelatedIncident]:
        threat_intel = threat_intel or {}
        incidents: List[CorrelatedIncident] = []
        processed: Set[DedupKey] = set()

        for rule in sorted(rules, key=rule_priority):
            if not rule.enabled:
                continue
            fired = 0
            for key_type, key_value in candidate_keys(rule, index):
                dedup_key = (rule.id, key_type, key_value)
                if dedup_key in processed:
                    continue

                incident = self.evaluate_key(rule, key_type, key_value, index, threat_intel)
                if incident is None:
                    continue

                processed.add(dedup_key)
                incidents.append(incident)
                fired += 1

            if fired:
                logger.info("Rule %s (%s) fired for %d key(s)", rule.id, rule.name, fired)

        return incidents

    def evaluate_key(
        self,
        rule: CorrelationRule,
        key_type: CorrelationKeyType,
        key_value: str,
        index: CorrelationIndex,
        threat_intel: Mapping[str, ThreatIntelResult],
    ) -> Optional[CorrelatedIncident]:
        events = gather_events(key_type, key_value, index)
        if not events:
            return None

        matched = apply_conditions(rule, events)
        if matched is None:
            return None

        if not passes_threshold(rule.threshold, matched):
            return None

        window = rule.time_window_minutes or DEFAULT_TIME_WINDOW_MINUTES
        matched = enforce_time_window(matched, window)
        if len(matched) < MIN_CORRELATED_EVENTS:
            return None

        if rule.pattern_type == PATTERN_SEQUENCE and rule.sequence:
            matched = match_sequence(rule.sequence, matched)
            if matched is None:
                return None

        enrichment = enrich_candidate(key_type, key_value, index, threat_intel)
        return build_incident(rule, key_type, key_value, matched, enrichment)


rule_evaluator = RuleEvaluator()
