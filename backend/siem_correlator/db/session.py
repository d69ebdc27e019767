# backend/siem_correlator/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from siem_correlator.core.config import settings


def _connect_args(url: str) -> dict:
    # Entity stores open sessions from worker threads during the initial load
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    pool_pre_ping=True,
)

# One short-lived session per entity store call
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)
