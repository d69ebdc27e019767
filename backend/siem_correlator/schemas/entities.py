# backend/siem_correlator/schemas/entities.py
"""
Read-only snapshots of the records a correlation run works on.

Records come from the entity store as-is, so free-form string fields
(event severity, endpoint event type) are not forced into enums here;
unknown severities simply weigh 0 during scoring.
"""
from typing import Annotated, Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CorrelationKeyType(str, Enum):
    IP_ADDRESS = "ip_address"
    USER_EMAIL = "user_email"


def ensure_utc(value: datetime) -> datetime:
    """Naive timestamps read from the store are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]


class EntitySnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: Optional[str] = None


class SecurityEvent(EntitySnapshot):
    created_date: UTCDateTime
    event_type: Optional[str] = None
    severity: Optional[str] = None
    ip_address: Optional[str] = None
    user_email: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("details", mode="before")
    @classmethod
    def _details_default(cls, v):
        return v or {}


class EndpointEvent(EntitySnapshot):
    endpoint_id: str
    timestamp: UTCDateTime
    type: Optional[str] = None
    severity: Optional[str] = None
    process_name: Optional[str] = None
    file_path: Optional[str] = None
    description: Optional[str] = None


class Endpoint(EntitySnapshot):
    hostname: str
    last_ip: Optional[str] = None
    owner_email: Optional[str] = None
    updated_date: Optional[UTCDateTime] = None


class BlockedIP(EntitySnapshot):
    ip_address: str
    active: bool = True
    blocked_until: Optional[UTCDateTime] = None
    reason: Optional[str] = None
    created_date: Optional[UTCDateTime] = None

    def is_blocking(self, now: datetime) -> bool:
        return self.active and (self.blocked_until is None or self.blocked_until > now)


class RuleCondition(BaseModel):
    """One filter step of a rule, e.g. details.auth.result equals failure."""
    source: str = "security_events"
    field: str
    operator: str
    value: Any = None
    required: bool = False


class RuleThreshold(BaseModel):
    count: Optional[int] = None
    unique_field: Optional[str] = None
    unique_count: Optional[int] = None


class SequenceStep(BaseModel):
    event_type: Optional[str] = None
    severity_min: Optional[str] = None
    max_gap_minutes: Optional[float] = None


class CorrelationRule(EntitySnapshot):
    name: str
    description: Optional[str] = None
    enabled: bool = True
    priority: Optional[int] = None
    correlation_keys: List[str] = Field(default_factory=list)
    time_window_minutes: Optional[int] = None
    conditions: List[RuleCondition] = Field(default_factory=list)
    threshold: Optional[RuleThreshold] = None
    pattern_type: Optional[str] = None
    sequence: List[SequenceStep] = Field(default_factory=list)
    output_severity: Optional[str] = None
    mitre_techniques: List[str] = Field(default_factory=list)
    trigger_count: int = 0
    last_triggered: Optional[UTCDateTime] = None

    @field_validator(
        "correlation_keys", "conditions", "sequence", "mitre_techniques",
        mode="before",
    )
    @classmethod
    def _list_default(cls, v):
        return v or []

    @field_validator("trigger_count", mode="before")
    @classmethod
    def _count_default(cls, v):
        return v or 0


class Notification(EntitySnapshot):
    message: str
    type: str = "alert"
    link: Optional[str] = None
    created_at: Optional[UTCDateTime] = None
