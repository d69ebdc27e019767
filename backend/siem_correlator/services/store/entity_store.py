# backend/siem_correlator/services/store/entity_store.py

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, Type, TypeVar
import uuid

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy import JSON
from sqlalchemy.orm import Session

from siem_correlator.models import (
    BlockedIPRecord,
    CorrelatedIncidentRecord,
    CorrelationRuleRecord,
    EndpointEventRecord,
    EndpointRecord,
    NotificationRecord,
    SecurityEventRecord,
)
from siem_correlator.schemas.correlation import CorrelatedIncident
from siem_correlator.schemas.entities import (
    BlockedIP,
    CorrelationRule,
    Endpoint,
    EndpointEvent,
    Notification,
    SecurityEvent,
)

S = TypeVar("S", bound=BaseModel)


class EntityStore(Protocol[S]):
    """
    Bounded-query repository over one entity type.

    `sort` is a field name, prefixed with "-" for descending order.
    """

    def list(self, sort: Optional[str] = None, limit: Optional[int] = None) -> List[S]: ...

    def filter(
        self,
        criteria: Dict[str, Any],
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[S]: ...

    def create(self, record: S) -> S: ...

    def update(self, record_id: str, patch: Dict[str, Any]) -> S: ...


def _parse_sort(sort: Optional[str]) -> tuple[Optional[str], bool]:
    if not sort:
        return None, False
    if sort.startswith("-"):
        return sort[1:], True
    return sort, False


class SqlEntityStore(Generic[S]):
    """
    DB-backed entity store (Postgres via SQLAlchemy).

    One short-lived session per call, so the store is safe to use from
    worker threads during the concurrent initial load.
    """

    def __init__(
        self,
        model: type,
        schema: Type[S],
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> None:
        self.model = model
        self.schema = schema
        self._session_factory = session_factory

    def _get_db(self) -> Session:
        if self._session_factory is None:
            from siem_correlator.db.session import SessionLocal

            self._session_factory = SessionLocal
        return self._session_factory()

    def _query(self, db: Session, criteria: Dict[str, Any], sort: Optional[str], limit: Optional[int]):
        q = db.query(self.model)
        if criteria:
            q = q.filter_by(**criteria)
        field, descending = _parse_sort(sort)
        if field:
            column = getattr(self.model, field)
            q = q.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            q = q.limit(limit)
        return q

    def _to_columns(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Keep only mapped columns; JSON columns get JSON-safe values."""
        out: Dict[str, Any] = {}
        for column in self.model.__table__.columns:
            if column.name not in data:
                continue
            value = data[column.name]
            if isinstance(column.type, JSON):
                value = jsonable_encoder(value)
            out[column.name] = value
        return out

    # --------------------------------------------------------
    # Read
    # --------------------------------------------------------
    def list(self, sort: Optional[str] = None, limit: Optional[int] = None) -> List[S]:
        return self.filter({}, sort=sort, limit=limit)

    def filter(
        self,
        criteria: Dict[str, Any],
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[S]:
        db = self._get_db()
        try:
            rows = self._query(db, criteria, sort, limit).all()
            return [self.schema.model_validate(r) for r in rows]
        finally:
            db.close()

    # --------------------------------------------------------
    # Create / update
    # --------------------------------------------------------
    def create(self, record: S) -> S:
        db = self._get_db()
        try:
            data = self._to_columns(record.model_dump())
            if not data.get("id"):
                data["id"] = str(uuid.uuid4())
            row = self.model(**data)
            db.add(row)
            db.commit()
            db.refresh(row)
            return self.schema.model_validate(row)
        finally:
            db.close()

    def update(self, record_id: str, patch: Dict[str, Any]) -> S:
        db = self._get_db()
        try:
            row = (
                db.query(self.model)
                .filter(self.model.id == record_id)
                .one()
            )
            for key, value in self._to_columns(patch).items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return self.schema.model_validate(row)
        finally:
            db.close()


class MemoryEntityStore(Generic[S]):
    """
    In-memory entity store with the same interface as SqlEntityStore.
    Used for local dev and tests.
    """

    def __init__(self, schema: Type[S], records: Optional[List[S]] = None) -> None:
        self.schema = schema
        # record id -> stored snapshot
        self._records: Dict[str, S] = {}
        for record in records or []:
            self._put(record)

    def _put(self, record: S) -> S:
        if not getattr(record, "id", None):
            record = record.model_copy(update={"id": str(uuid.uuid4())})
        self._records[record.id] = record
        return record

    @property
    def records(self) -> List[S]:
        return list(self._records.values())

    def list(self, sort: Optional[str] = None, limit: Optional[int] = None) -> List[S]:
        return self.filter({}, sort=sort, limit=limit)

    def filter(
        self,
        criteria: Dict[str, Any],
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[S]:
        out = [
            r for r in self._records.values()
            if all(getattr(r, k, None) == v for k, v in criteria.items())
        ]

        field, descending = _parse_sort(sort)
        if field:
            present = [r for r in out if getattr(r, field, None) is not None]
            missing = [r for r in out if getattr(r, field, None) is None]
            present.sort(key=lambda r: getattr(r, field), reverse=descending)
            out = present + missing

        return out[:limit] if limit is not None else out

    def create(self, record: S) -> S:
        return self._put(record)

    def update(self, record_id: str, patch: Dict[str, Any]) -> S:
        current = self._records[record_id]
        updated = self.schema.model_validate({**current.model_dump(), **patch})
        self._records[record_id] = updated
        return updated


@dataclass
class EntityStores:
    security_events: EntityStore[SecurityEvent]
    endpoints: EntityStore[Endpoint]
    endpoint_events: EntityStore[EndpointEvent]
    blocked_ips: EntityStore[BlockedIP]
    rules: EntityStore[CorrelationRule]
    incidents: EntityStore[CorrelatedIncident]
    notifications: EntityStore[Notification]

    @classmethod
    def sql(cls, session_factory: Optional[Callable[[], Session]] = None) -> "EntityStores":
        return cls(
            security_events=SqlEntityStore(SecurityEventRecord, SecurityEvent, session_factory),
            endpoints=SqlEntityStore(EndpointRecord, Endpoint, session_factory),
            endpoint_events=SqlEntityStore(EndpointEventRecord, EndpointEvent, session_factory),
            blocked_ips=SqlEntityStore(BlockedIPRecord, BlockedIP, session_factory),
            rules=SqlEntityStore(CorrelationRuleRecord, CorrelationRule, session_factory),
            incidents=SqlEntityStore(CorrelatedIncidentRecord, CorrelatedIncident, session_factory),
            notifications=SqlEntityStore(NotificationRecord, Notification, session_factory),
        )

    @classmethod
    def memory(
        cls,
        security_events: Optional[List[SecurityEvent]] = None,
        endpoints: Optional[List[Endpoint]] = None,
        endpoint_events: Optional[List[EndpointEvent]] = None,
        blocked_ips: Optional[List[BlockedIP]] = None,
        rules: Optional[List[CorrelationRule]] = None,
    ) -> "EntityStores":
        return cls(
            security_events=MemoryEntityStore(SecurityEvent, security_events),
            endpoints=MemoryEntityStore(Endpoint, endpoints),
            endpoint_events=MemoryEntityStore(EndpointEvent, endpoint_events),
            blocked_ips=MemoryEntityStore(BlockedIP, blocked_ips),
            rules=MemoryEntityStore(CorrelationRule, rules),
            incidents=MemoryEntityStore(CorrelatedIncident),
            notifications=MemoryEntityStore(Notification),
        )
