# backend/siem_correlator/services/correlation/loader.py
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Sequence

from siem_correlator.core.config import settings
from siem_correlator.schemas.entities import (
    BlockedIP,
    CorrelationRule,
    Endpoint,
    EndpointEvent,
    SecurityEvent,
)
from siem_correlator.services.store.entity_store import EntityStores

logger = logging.getLogger(__name__)

DEFAULT_RULE_PRIORITY = 50


class SourceFetchError(RuntimeError):
    """An entity store fetch failed during the initial load."""

    def __init__(self, source: str, cause: BaseException) -> None:
        super().__init__(f"Failed to load {source}: {type(cause).__name__}: {cause}")
        self.source = source
        self.cause = cause


@dataclass
class CorrelationSnapshot:
    """Everything one correlation run reads, already narrowed to the time window."""
    now: datetime
    cutoff: datetime
    security_events: List[SecurityEvent] = field(default_factory=list)
    endpoints: List[Endpoint] = field(default_factory=list)
    endpoint_events: List[EndpointEvent] = field(default_factory=list)
    blocked_ips: List[BlockedIP] = field(default_factory=list)
    rules: List[CorrelationRule] = field(default_factory=list)


def rule_priority(rule: CorrelationRule) -> int:
    return rule.priority if rule.priority is not None else DEFAULT_RULE_PRIORITY


def select_rules(rules: Sequence[CorrelationRule], rule_ids: Optional[Sequence[str]]) -> List[CorrelationRule]:
    """Apply the optional rule id filter and order by ascending priority."""
    wanted = set(rule_ids or [])
    selected = [r for r in rules if r.enabled and (not wanted or r.id in wanted)]
    return sorted(selected, key=rule_priority)


async def _fetch(source: str, fn: Callable[[], Any]) -> Any:
    try:
        return await asyncio.to_thread(fn)
    except Exception as e:
        logger.error("Loading %s failed: %s", source, e)
        raise SourceFetchError(source, e) from e


async def load_snapshot(
    stores: EntityStores,
    time_window_hours: float = 1,
    rule_ids: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> CorrelationSnapshot:
    """
    Fetch all sources concurrently and narrow telemetry to the time window.
    Any failing source aborts the load with SourceFetchError.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=time_window_hours)

    sec_events, endpoints, endpoint_events, blocked_ips, rules = await asyncio.gather(
        _fetch("security_events", lambda: stores.security_events.list(
            "-created_date", settings.SECURITY_EVENT_FETCH_LIMIT)),
        _fetch("endpoints", lambda: stores.endpoints.list(
            "-updated_date", settings.ENDPOINT_FETCH_LIMIT)),
        _fetch("endpoint_events", lambda: stores.endpoint_events.list(
            "-timestamp", settings.ENDPOINT_EVENT_FETCH_LIMIT)),
        _fetch("blocked_ips", lambda: stores.blocked_ips.filter(
            {"active": True}, "-created_date", settings.BLOCKED_IP_FETCH_LIMIT)),
        _fetch("correlation_rules", lambda: stores.rules.filter({"enabled": True})),
    )

    snapshot = CorrelationSnapshot(
        now=now,
        cutoff=cutoff,
        security_events=[e for e in sec_events if e.created_date >= cutoff],
        endpoints=list(endpoints),
        endpoint_events=[e for e in endpoint_events if e.timestamp >= cutoff],
        blocked_ips=list(blocked_ips),
        rules=select_rules(rules, rule_ids),
    )

    logger.info(
        "Loaded %d/%d security events, %d endpoints, %d/%d endpoint events, "
        "%d blocked IPs, %d rules (window=%sh)",
        len(snapshot.security_events), len(sec_events),
        len(snapshot.endpoints),
        len(snapshot.endpoint_events), len(endpoint_events),
        len(snapshot.blocked_ips),
        len(snapshot.rules),
        time_window_hours,
    )
    return snapshot
