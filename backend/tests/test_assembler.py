from datetime import timedelta

from siem_correlator.schemas.correlation import EventChainEntry, ThreatIntelMatch
from siem_correlator.schemas.entities import CorrelationKeyType
from siem_correlator.services.correlation.assembler import (
    build_event_chain,
    build_incident,
    chain_time_span_minutes,
    count_by_rule,
    sort_incidents,
)
from siem_correlator.services.correlation.enrichment import CandidateEnrichment


def test_event_chain_merges_sources_in_time_order(make_event, make_endpoint_event):
    events = [make_event(minutes_ago=5), make_event(minutes_ago=1)]
    ep_events = [make_endpoint_event(minutes_ago=3, process_name="powershell.exe")]

    chain = build_event_chain(events, ep_events)

    assert [c.source for c in chain] == ["security_events", "endpoint_events", "security_events"]
    assert chain[1].summary == "process_start: powershell.exe"


def test_event_chain_caps_and_truncates(make_event, make_endpoint_event):
    events = [make_event(minutes_ago=m, message="x" * 250) for m in range(25)]
    ep_events = [make_endpoint_event(minutes_ago=m, description="y" * 150) for m in range(15)]

    chain = build_event_chain(events, ep_events)

    assert sum(1 for c in chain if c.source == "security_events") == 20
    assert sum(1 for c in chain if c.source == "endpoint_events") == 10
    assert all(len(c.summary) == 100 for c in chain)


def test_event_chain_keeps_most_recent_events(make_event, make_endpoint_event, now):
    # 25 events 30 seconds apart; the newest sits at `now`
    events = [make_event(minutes_ago=i / 2, severity="low") for i in range(24, -1, -1)]
    ep_events = [make_endpoint_event(minutes_ago=m, id=f"ee-{m}m") for m in range(14, -1, -1)]

    chain = build_event_chain(events, ep_events)
    security = [c for c in chain if c.source == "security_events"]
    endpoint_ids = {c.event_id for c in chain if c.source == "endpoint_events"}

    assert len(security) == 20
    assert security[-1].timestamp == now
    assert security[0].timestamp == now - timedelta(minutes=9.5)
    assert endpoint_ids == {f"ee-{m}m" for m in range(10)}


def test_event_chain_span_covers_latest_activity(make_event, now):
    events = [make_event(minutes_ago=i / 2, severity="low") for i in range(24, -1, -1)]

    chain = build_event_chain(events, [])

    assert len(chain) == 20
    assert chain[-1].timestamp == now
    assert chain[0].timestamp == now - timedelta(minutes=9.5)
    assert chain_time_span_minutes(chain) == 10


def test_endpoint_summary_falls_back_to_file_path_then_empty(make_endpoint_event):
    chain = build_event_chain([], [
        make_endpoint_event(minutes_ago=2, type="file_write", file_path="C:\\tmp\\a.dll"),
        make_endpoint_event(minutes_ago=1, type="network"),
    ])

    assert [c.summary for c in chain] == ["file_write: C:\\tmp\\a.dll", "network: "]


def test_time_span_rounds_half_up(now):
    chain = [
        EventChainEntry(source="security_events", timestamp=now - timedelta(seconds=150)),
        EventChainEntry(source="security_events", timestamp=now),
    ]

    assert chain_time_span_minutes(chain) == 3
    assert chain_time_span_minutes(chain[:1]) == 0


def test_build_incident_for_ip_key(make_event, make_rule, make_endpoint, make_endpoint_event):
    rule = make_rule(name="Brute force", mitre_techniques=["T1110"], output_severity="medium")
    events = [
        make_event(minutes_ago=4, user="a@x.org"),
        make_event(minutes_ago=2, user="b@x.org"),
        make_event(minutes_ago=1, user="a@x.org"),
    ]
    enrichment = CandidateEnrichment()
    enrichment.add_source("endpoints")
    enrichment.add_source("endpoint_events")
    enrichment.endpoints.append(make_endpoint(hostname="ws-42"))
    enrichment.endpoint_events.append(make_endpoint_event(minutes_ago=3))

    incident = build_incident(rule, CorrelationKeyType.IP_ADDRESS, "10.0.0.5", events, enrichment)

    assert incident.title == "Brute force: 10.0.0.5"
    assert incident.description == "Correlated activity detected for ip 10.0.0.5"
    assert incident.severity == "medium"
    assert incident.fidelity_score == 51
    assert incident.related_ips == ["10.0.0.5"]
    assert incident.related_users == ["a@x.org", "b@x.org"]
    assert incident.related_endpoints == ["ws-42"]
    assert incident.mitre_techniques == ["T1110"]
    assert len(incident.event_chain) == 4
    assert incident.time_span_minutes == 3


def test_build_incident_keeps_rule_description_and_intel(make_event, make_rule):
    rule = make_rule(description="Known C2 beaconing")
    enrichment = CandidateEnrichment()
    enrichment.add_source("threat_intel")
    enrichment.threat_intel_matches.append(
        ThreatIntelMatch(indicator="10.0.0.5", source="ThreatFox", families=["Emotet"])
    )

    incident = build_incident(
        rule, CorrelationKeyType.IP_ADDRESS, "10.0.0.5",
        [make_event(minutes_ago=2), make_event(minutes_ago=1)], enrichment,
    )

    assert incident.description == "Known C2 beaconing"
    assert incident.severity == "critical"
    # 30 for two sources + 25 intel + 4 for two events
    assert incident.fidelity_score == 59


def test_sort_by_severity_then_fidelity(make_event, make_rule):
    def incident(rule_id, severity, fidelity):
        base = build_incident(
            make_rule(rule_id), CorrelationKeyType.IP_ADDRESS, "10.0.0.5",
            [make_event(), make_event()], CandidateEnrichment(),
        )
        return base.model_copy(update={"severity": severity, "fidelity_score": fidelity})

    ranked = sort_incidents([
        incident("a", "high", 80),
        incident("b", "critical", 30),
        incident("c", "high", 90),
        incident("d", "low", 100),
    ])

    assert [i.rule_id for i in ranked] == ["b", "c", "a", "d"]
    assert count_by_rule(ranked + [ranked[0]]) == {"b": 2, "c": 1, "a": 1, "d": 1}
