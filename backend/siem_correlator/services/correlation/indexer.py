# backend/siem_correlator/services/correlation/indexer.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Set

from siem_correlator.schemas.entities import Endpoint, EndpointEvent, SecurityEvent
from siem_correlator.services.correlation.loader import CorrelationSnapshot


@dataclass
class CorrelationIndex:
    """
    Request-scoped lookup tables over one snapshot. Built once per run and
    passed by reference into the evaluator; never cached across runs.
    """
    ip_to_events: Dict[str, List[SecurityEvent]] = field(default_factory=dict)
    user_to_events: Dict[str, List[SecurityEvent]] = field(default_factory=dict)
    ip_to_endpoints: Dict[str, List[Endpoint]] = field(default_factory=dict)
    endpoint_events: List[EndpointEvent] = field(default_factory=list)
    blocked_ips: Set[str] = field(default_factory=set)

    @classmethod
    def build(cls, snapshot: CorrelationSnapshot) -> "CorrelationIndex":
        index = cls(endpoint_events=list(snapshot.endpoint_events))

        for event in snapshot.security_events:
            if event.ip_address:
                index.ip_to_events.setdefault(event.ip_address, []).append(event)
            if event.user_email:
                index.user_to_events.setdefault(event.user_email, []).append(event)

        for endpoint in snapshot.endpoints:
            if endpoint.last_ip:
                index.ip_to_endpoints.setdefault(endpoint.last_ip, []).append(endpoint)

        index.blocked_ips = blocked_ip_set(snapshot.blocked_ips, snapshot.now)
        return index

    def endpoint_events_for(self, endpoint_ids: Iterable[str]) -> List[EndpointEvent]:
        ids = set(endpoint_ids)
        return [e for e in self.endpoint_events if e.endpoint_id in ids]


def blocked_ip_set(blocked_ips, now: datetime) -> Set[str]:
    """IPs whose block is active and not yet expired."""
    return {b.ip_address for b in blocked_ips if b.is_blocking(now)}
