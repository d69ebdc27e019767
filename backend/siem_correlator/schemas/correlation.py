# backend/siem_correlator/schemas/correlation.py
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

from siem_correlator.schemas.entities import UTCDateTime


class EventChainEntry(BaseModel):
    """
    One step of an incident timeline, from either telemetry source.
    """
    source: str  # security_events | endpoint_events
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    severity: Optional[str] = None
    timestamp: UTCDateTime
    summary: Optional[str] = None


class ThreatIntelMatch(BaseModel):
    indicator: str
    source: str
    families: List[str] = Field(default_factory=list)


class CorrelatedIncident(BaseModel):
    """
    Final output of a correlation run for one (rule, correlation key) pair.
    Frozen: enrichment steps produce a copy via model_copy(update=...).
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[str] = None
    rule_id: str
    rule_name: str
    title: str
    description: str
    severity: str  # info/low/medium/high/critical
    confidence_score: int  # 0-100
    fidelity_score: int  # 0-100
    correlation_key: str
    correlation_type: str  # ip_address | user_email
    sources_involved: List[str]
    event_chain: List[EventChainEntry]
    related_ips: List[str] = Field(default_factory=list)
    related_users: List[str] = Field(default_factory=list)
    related_endpoints: List[str] = Field(default_factory=list)
    threat_intel_matches: List[ThreatIntelMatch] = Field(default_factory=list)
    mitre_techniques: List[str] = Field(default_factory=list)
    time_span_minutes: int = 0

    # Filled in by narrative generation for the top incidents
    attack_narrative: Optional[str] = None
    attack_stage: Optional[str] = None
    recommended_actions: List[str] = Field(default_factory=list)


class CorrelationRunRequest(BaseModel):
    time_window_hours: float = Field(1, gt=0)
    rule_ids: List[str] = Field(default_factory=list)


class StepFailure(BaseModel):
    stage: str  # narrative | persist | notify | rule_usage
    item: str
    error: str


class RunReport(BaseModel):
    succeeded: List[str] = Field(default_factory=list)
    failed: List[StepFailure] = Field(default_factory=list)


class CorrelationRunResponse(BaseModel):
    success: bool = True
    incidents_found: int
    incidents_saved: int
    top_incidents: List[CorrelatedIncident]
    unavailable_sources: List[str] = Field(default_factory=list)
    report: RunReport = Field(default_factory=RunReport)
    generated_at: datetime
