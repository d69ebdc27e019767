# backend/siem_correlator/models/security_event.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from siem_correlator.db.base_class import Base, JSONType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SecurityEventRecord(Base):
    __tablename__ = "security_events"

    id = Column(String, primary_key=True, index=True)   # store UUID as string
    created_date = Column(DateTime(timezone=True), default=_utcnow, index=True)
    event_type = Column(String, index=True)
    severity = Column(String, index=True)
    ip_address = Column(String, nullable=True, index=True)
    user_email = Column(String, nullable=True, index=True)
    message = Column(String, nullable=True)

    details = Column(JSONType)   # original sensor / SIEM context


class EndpointEventRecord(Base):
    __tablename__ = "endpoint_events"

    id = Column(String, primary_key=True, index=True)
    endpoint_id = Column(String, index=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow, index=True)
    type = Column(String, nullable=True)
    severity = Column(String, nullable=True)
    process_name = Column(String, nullable=True)
    file_path = Column(String, nullable=True)
    description = Column(String, nullable=True)
