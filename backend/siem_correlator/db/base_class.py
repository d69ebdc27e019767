# backend/siem_correlator/db/base_class.py
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (tests run against SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")
