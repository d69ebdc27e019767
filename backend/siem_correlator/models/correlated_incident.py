# backend/siem_correlator/models/correlated_incident.py
from sqlalchemy import Column, DateTime, Integer, String

from siem_correlator.models.security_event import _utcnow
from siem_correlator.db.base_class import Base, JSONType


class CorrelatedIncidentRecord(Base):
    __tablename__ = "correlated_incidents"

    id = Column(String, primary_key=True, index=True)
    rule_id = Column(String, index=True)
    rule_name = Column(String, nullable=True)
    title = Column(String)
    description = Column(String, nullable=True)
    severity = Column(String, index=True)
    confidence_score = Column(Integer)
    fidelity_score = Column(Integer, index=True)

    correlation_key = Column(String, index=True)
    correlation_type = Column(String)
    sources_involved = Column(JSONType)
    event_chain = Column(JSONType)
    related_ips = Column(JSONType)
    related_users = Column(JSONType)
    related_endpoints = Column(JSONType)
    threat_intel_matches = Column(JSONType)
    mitre_techniques = Column(JSONType)
    time_span_minutes = Column(Integer, default=0)

    attack_narrative = Column(String, nullable=True)
    attack_stage = Column(String, nullable=True)
    recommended_actions = Column(JSONType)

    created_date = Column(DateTime(timezone=True), default=_utcnow, index=True)


class NotificationRecord(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, index=True)
    message = Column(String)
    type = Column(String, default="alert")
    link = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
