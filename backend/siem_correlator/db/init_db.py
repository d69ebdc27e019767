# backend/siem_correlator/db/init_db.py
import logging
from typing import Optional

from sqlalchemy.engine import Engine

from siem_correlator.db.base_class import Base

# Import models so they are registered with Base.metadata
from siem_correlator import models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Create the correlation tables (security events, endpoints, rules,
    incidents, notifications) if missing. Development only; production
    schemas are managed by migrations.
    """
    if bind is None:
        from siem_correlator.db.session import engine

        bind = engine

    Base.metadata.create_all(bind=bind)
    logger.info("Ensured tables: %s", ", ".join(sorted(Base.metadata.tables)))
