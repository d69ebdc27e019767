from siem_correlator.models.security_event import SecurityEventRecord, EndpointEventRecord  # noqa: F401
from siem_correlator.models.endpoint import EndpointRecord, BlockedIPRecord  # noqa: F401
from siem_correlator.models.correlation_rule import CorrelationRuleRecord  # noqa: F401
from siem_correlator.models.correlated_incident import (  # noqa: F401
    CorrelatedIncidentRecord,
    NotificationRecord,
)
