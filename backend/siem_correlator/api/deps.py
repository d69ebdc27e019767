from functools import lru_cache

from fastapi import Depends

from siem_correlator.services.correlation.correlation_engine import CorrelationEngine
from siem_correlator.services.store.entity_store import EntityStores


@lru_cache
def get_entity_stores() -> EntityStores:
    return EntityStores.sql()


def get_correlation_engine(stores: EntityStores = Depends(get_entity_stores)) -> CorrelationEngine:
    return CorrelationEngine(stores)
