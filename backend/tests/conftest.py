import os

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DB_AUTO_CREATE", "false")
os.environ.pop("NARRATIVE_API_URL", None)
os.environ.pop("SLACK_ALERT_WEBHOOK_URL", None)
os.environ.pop("GENERIC_ALERT_WEBHOOK_URL", None)

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from siem_correlator.schemas.entities import (
    BlockedIP,
    CorrelationRule,
    Endpoint,
    EndpointEvent,
    SecurityEvent,
)
from siem_correlator.schemas.threat_intel import ThreatIntelResult

_ids = itertools.count(1)


class FakeThreatIntel:
    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.calls = []

    async def lookup(self, indicators, deep_lookup=False):
        self.calls.append((list(indicators), deep_lookup))
        if self.error:
            raise self.error
        return {i: self.results[i] for i in indicators if i in self.results}


def intel_match(indicator, families=("Cobalt Strike",), sources=("ThreatFox",)):
    return ThreatIntelResult(
        indicator=indicator,
        matched=True,
        risk_score=60,
        risk_level="high",
        families=list(families),
        sources=list(sources),
    )


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_event(now):
    def _make(minutes_ago=1, severity="high", ip="10.0.0.5", user=None, event_type="login_fail", **kw):
        return SecurityEvent(
            id=kw.pop("id", f"se-{next(_ids)}"),
            created_date=now - timedelta(minutes=minutes_ago),
            event_type=event_type,
            severity=severity,
            ip_address=ip,
            user_email=user,
            message=kw.pop("message", f"{event_type} from {ip}"),
            **kw,
        )

    return _make


@pytest.fixture
def make_rule():
    def _make(rule_id="r1", **kw):
        kw.setdefault("name", f"Rule {rule_id}")
        return CorrelationRule(id=rule_id, **kw)

    return _make


@pytest.fixture
def make_endpoint():
    def _make(endpoint_id="ep-1", hostname="ws-01", last_ip="10.0.0.5", **kw):
        return Endpoint(id=endpoint_id, hostname=hostname, last_ip=last_ip, **kw)

    return _make


@pytest.fixture
def make_endpoint_event(now):
    def _make(endpoint_id="ep-1", minutes_ago=2, **kw):
        kw.setdefault("type", "process_start")
        kw.setdefault("severity", "medium")
        return EndpointEvent(
            id=kw.pop("id", f"ee-{next(_ids)}"),
            endpoint_id=endpoint_id,
            timestamp=now - timedelta(minutes=minutes_ago),
            **kw,
        )

    return _make


@pytest.fixture
def make_blocked_ip(now):
    def _make(ip="10.0.0.5", active=True, blocked_until=None):
        return BlockedIP(id=f"bl-{next(_ids)}", ip_address=ip, active=active, blocked_until=blocked_until, created_date=now)

    return _make
