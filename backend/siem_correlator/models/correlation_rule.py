# backend/siem_correlator/models/correlation_rule.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String

from siem_correlator.models.security_event import _utcnow
from siem_correlator.db.base_class import Base, JSONType


class CorrelationRuleRecord(Base):
    __tablename__ = "correlation_rules"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    enabled = Column(Boolean, default=True, index=True)
    priority = Column(Integer, nullable=True)

    correlation_keys = Column(JSONType)     # ["ip_address", "user_email"]
    time_window_minutes = Column(Integer, nullable=True)
    conditions = Column(JSONType)           # [{source, field, operator, value, required}]
    threshold = Column(JSONType, nullable=True)   # {count, unique_field, unique_count}
    pattern_type = Column(String, nullable=True)  # threshold | sequence
    sequence = Column(JSONType)             # [{event_type, severity_min, max_gap_minutes}]
    output_severity = Column(String, nullable=True)
    mitre_techniques = Column(JSONType)

    trigger_count = Column(Integer, default=0)
    last_triggered = Column(DateTime(timezone=True), nullable=True)
    created_date = Column(DateTime(timezone=True), default=_utcnow, index=True)
