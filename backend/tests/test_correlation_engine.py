import json
from datetime import timedelta

import httpx
import pytest

from conftest import FakeThreatIntel, intel_match
from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.services.alerting import alert_dispatcher
from siem_correlator.services.correlation.correlation_engine import CorrelationEngine
from siem_correlator.services.correlation.loader import SourceFetchError
from siem_correlator.services.narrative.narrative_service import NarrativeService
from siem_correlator.services.store.entity_store import EntityStores, MemoryEntityStore


class BrokenStore(MemoryEntityStore):
    def list(self, sort=None, limit=None):
        raise ConnectionError("database unreachable")

    def create(self, record):
        raise ConnectionError("database unreachable")


def _engine(stores, threat_intel=None, narrative=None):
    return CorrelationEngine(
        stores,
        threat_intel=threat_intel or FakeThreatIntel(),
        narrative=narrative or NarrativeService(base_url=""),
    )


@pytest.fixture
def brute_force_events(make_event):
    return [
        make_event(minutes_ago=3, severity="high"),
        make_event(minutes_ago=2, severity="high"),
        make_event(minutes_ago=1, severity="critical"),
    ]


@pytest.mark.asyncio
async def test_scenario_a_ip_only_incident_below_save_threshold(now, brute_force_events, make_rule):
    stores = EntityStores.memory(security_events=brute_force_events, rules=[make_rule(threshold={"count": 2})])
    threat_intel = FakeThreatIntel()

    result = await _engine(stores, threat_intel).run(now=now)

    assert result.success is True
    assert result.incidents_found == 1
    assert result.incidents_saved == 0
    incident = result.top_incidents[0]
    assert incident.fidelity_score == 21
    assert incident.confidence_score == 82
    assert incident.severity == "high"
    assert threat_intel.calls == [(["10.0.0.5"], True)]
    assert stores.incidents.records == []
    assert stores.notifications.records == []


@pytest.mark.asyncio
async def test_scenario_b_endpoint_corroboration_is_saved_and_notified(
    now, brute_force_events, make_rule, make_endpoint, make_endpoint_event
):
    stores = EntityStores.memory(
        security_events=brute_force_events,
        endpoints=[make_endpoint()],
        endpoint_events=[make_endpoint_event(minutes_ago=2)],
        rules=[make_rule()],
    )

    result = await _engine(stores).run(now=now)

    incident = result.top_incidents[0]
    assert incident.sources_involved == ["security_events", "endpoints", "endpoint_events"]
    assert incident.fidelity_score == 51
    assert incident.related_endpoints == ["ws-01"]
    assert result.incidents_saved == 1
    assert result.report.succeeded == [incident.title]

    assert len(stores.incidents.records) == 1
    assert stores.incidents.records[0].id
    notification = stores.notifications.records[0]
    assert notification.message == "Correlated Incident: Rule r1: 10.0.0.5 (3 sources)"
    assert notification.type == "alert"
    assert notification.link == "/SecurityDashboard"


@pytest.mark.asyncio
async def test_four_sources_escalate_to_critical(
    now, brute_force_events, make_rule, make_endpoint, make_endpoint_event, make_blocked_ip
):
    stores = EntityStores.memory(
        security_events=brute_force_events,
        endpoints=[make_endpoint()],
        endpoint_events=[make_endpoint_event()],
        blocked_ips=[make_blocked_ip()],
        rules=[make_rule(output_severity="medium")],
    )

    incident = (await _engine(stores).run(now=now)).top_incidents[0]

    assert "blocked_ips" in incident.sources_involved
    assert incident.severity == "critical"
    assert incident.fidelity_score == 51


@pytest.mark.asyncio
async def test_expired_block_does_not_corroborate(now, brute_force_events, make_rule, make_blocked_ip):
    stores = EntityStores.memory(
        security_events=brute_force_events,
        blocked_ips=[make_blocked_ip(blocked_until=now - timedelta(minutes=5))],
        rules=[make_rule()],
    )

    incident = (await _engine(stores).run(now=now)).top_incidents[0]

    assert incident.sources_involved == ["security_events"]


@pytest.mark.asyncio
async def test_scenario_c_threat_intel_match_escalates(now, brute_force_events, make_rule):
    stores = EntityStores.memory(security_events=brute_force_events, rules=[make_rule(output_severity="low")])
    threat_intel = FakeThreatIntel({"10.0.0.5": intel_match("10.0.0.5", families=["Emotet"])})

    result = await _engine(stores, threat_intel).run(now=now)

    incident = result.top_incidents[0]
    assert incident.severity == "critical"
    assert incident.threat_intel_matches[0].source == "ThreatFox"
    # 30 for two sources + 25 intel + 6 for three events
    assert incident.fidelity_score == 61
    assert result.incidents_saved == 1


@pytest.mark.asyncio
async def test_threat_intel_outage_is_reported_not_fatal(now, brute_force_events, make_rule):
    stores = EntityStores.memory(security_events=brute_force_events, rules=[make_rule()])
    threat_intel = FakeThreatIntel(error=httpx.ConnectError("feeds unreachable"))

    result = await _engine(stores, threat_intel).run(now=now)

    assert result.success is True
    assert result.unavailable_sources == ["threat_intel"]
    assert result.incidents_found == 1


@pytest.mark.asyncio
async def test_low_severity_events_skip_threat_intel(now, make_event, make_rule):
    stores = EntityStores.memory(
        security_events=[make_event(severity="low"), make_event(severity="medium")],
        rules=[make_rule()],
    )
    threat_intel = FakeThreatIntel()

    result = await _engine(stores, threat_intel).run(now=now)

    assert threat_intel.calls == []
    assert result.incidents_found == 1


@pytest.mark.asyncio
async def test_store_failure_aborts_the_run(now, make_rule):
    stores = EntityStores.memory(rules=[make_rule()])
    stores.endpoints = BrokenStore(stores.endpoints.schema)

    with pytest.raises(SourceFetchError) as exc_info:
        await _engine(stores).run(now=now)

    assert exc_info.value.source == "endpoints"


@pytest.mark.asyncio
async def test_events_outside_time_window_are_ignored(now, make_event, make_rule):
    stores = EntityStores.memory(
        security_events=[make_event(minutes_ago=90), make_event(minutes_ago=80), make_event(minutes_ago=1)],
        rules=[make_rule(time_window_minutes=120)],
    )

    assert (await _engine(stores).run(time_window_hours=1, now=now)).incidents_found == 0
    assert (await _engine(stores).run(time_window_hours=2, now=now)).incidents_found == 1


@pytest.mark.asyncio
async def test_rule_filter_and_usage_bookkeeping(now, brute_force_events, make_rule):
    stores = EntityStores.memory(
        security_events=brute_force_events,
        rules=[make_rule("r1", trigger_count=4), make_rule("r2")],
    )

    result = await _engine(stores).run(rule_ids=["r1"], now=now)

    assert [i.rule_id for i in result.top_incidents] == ["r1"]
    r1, r2 = (stores.rules.filter({"id": rid})[0] for rid in ("r1", "r2"))
    assert r1.trigger_count == 5
    assert r1.last_triggered == now
    assert r2.trigger_count == 0
    assert r2.last_triggered is None


@pytest.mark.asyncio
async def test_persist_failure_is_collected(now, brute_force_events, make_rule, make_endpoint, make_endpoint_event):
    stores = EntityStores.memory(
        security_events=brute_force_events,
        endpoints=[make_endpoint()],
        endpoint_events=[make_endpoint_event()],
        rules=[make_rule()],
    )
    stores.incidents = BrokenStore(CorrelatedIncident)

    result = await _engine(stores).run(now=now)

    assert result.success is True
    assert result.incidents_saved == 0
    assert [f.stage for f in result.report.failed] == ["persist"]
    assert "ConnectionError" in result.report.failed[0].error


@pytest.mark.asyncio
async def test_failing_alert_channel_is_reported(
    monkeypatch, now, brute_force_events, make_rule, make_endpoint, make_endpoint_event
):
    def broken_slack(incident):
        raise ConnectionError("slack down")

    monkeypatch.setattr(alert_dispatcher, "send_slack_alert", broken_slack)
    stores = EntityStores.memory(
        security_events=brute_force_events,
        endpoints=[make_endpoint()],
        endpoint_events=[make_endpoint_event()],
        rules=[make_rule()],
    )

    result = await _engine(stores).run(now=now)

    assert result.incidents_saved == 1
    assert len(stores.notifications.records) == 1
    assert [(f.stage, f.error) for f in result.report.failed] == [("notify", "slack alert failed")]


# --------------------------------------------------------
# Narratives
# --------------------------------------------------------
def _narrative_service(handler):
    return NarrativeService(base_url="http://llm.test", model="test-model", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_narrative_is_merged_into_top_incident(
    now, brute_force_events, make_rule, make_endpoint, make_endpoint_event
):
    prompts = []

    def handler(request):
        body = json.loads(request.content)
        prompts.append(body)
        narrative = {
            "attack_narrative": "Credential stuffing against ws-01.",
            "attack_stage": "Credential Access",
            "recommended_actions": ["Reset passwords", "Block 10.0.0.5"],
            "mitre_techniques": ["T1110", "T1078"],
        }
        return httpx.Response(200, json={"response": json.dumps(narrative)})

    stores = EntityStores.memory(
        security_events=brute_force_events,
        endpoints=[make_endpoint()],
        endpoint_events=[make_endpoint_event()],
        rules=[make_rule(mitre_techniques=["T1110"])],
    )

    result = await _engine(stores, narrative=_narrative_service(handler)).run(now=now)

    incident = result.top_incidents[0]
    assert incident.attack_stage == "Credential Access"
    assert incident.recommended_actions == ["Reset passwords", "Block 10.0.0.5"]
    assert incident.mitre_techniques == ["T1110", "T1078"]
    assert stores.incidents.records[0].attack_narrative == "Credential stuffing against ws-01."

    assert prompts[0]["model"] == "test-model"
    assert prompts[0]["format"] == "json"
    assert "Incident: Rule r1: 10.0.0.5" in prompts[0]["prompt"]


@pytest.mark.asyncio
async def test_narrative_skipped_for_low_fidelity_incidents(now, brute_force_events, make_rule):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"response": "{}"})

    stores = EntityStores.memory(security_events=brute_force_events, rules=[make_rule()])

    await _engine(stores, narrative=_narrative_service(handler)).run(now=now)

    assert calls == []


@pytest.mark.asyncio
async def test_narrative_failure_keeps_incident(
    now, brute_force_events, make_rule, make_endpoint, make_endpoint_event
):
    stores = EntityStores.memory(
        security_events=brute_force_events,
        endpoints=[make_endpoint()],
        endpoint_events=[make_endpoint_event()],
        rules=[make_rule()],
    )
    service = _narrative_service(lambda request: httpx.Response(503, json={"error": "model loading"}))

    result = await _engine(stores, narrative=service).run(now=now)

    assert result.incidents_saved == 1
    assert result.top_incidents[0].attack_narrative is None
    assert [f.stage for f in result.report.failed] == ["narrative"]
