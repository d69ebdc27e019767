# backend/siem_correlator/models/endpoint.py
from sqlalchemy import Boolean, Column, DateTime, String

from siem_correlator.models.security_event import _utcnow
from siem_correlator.db.base_class import Base


class EndpointRecord(Base):
    __tablename__ = "endpoints"

    id = Column(String, primary_key=True, index=True)
    hostname = Column(String, index=True)
    last_ip = Column(String, nullable=True, index=True)
    owner_email = Column(String, nullable=True)
    updated_date = Column(DateTime(timezone=True), default=_utcnow, index=True)


class BlockedIPRecord(Base):
    __tablename__ = "blocked_ips"

    id = Column(String, primary_key=True, index=True)
    ip_address = Column(String, index=True)
    active = Column(Boolean, default=True, index=True)
    blocked_until = Column(DateTime(timezone=True), nullable=True)
    reason = Column(String, nullable=True)
    created_date = Column(DateTime(timezone=True), default=_utcnow, index=True)
