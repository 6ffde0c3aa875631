"""
Health check utilities for the application.
"""

from typing import Any, Dict, Optional

from .config import config
from .logging_config import get_logger
from .record_store import RecordStore

logger = get_logger(__name__)

PROBE_KEY = 'health-probe:convomem'


def _probe_round_trip(store: RecordStore) -> bool:
    """Write, read back and delete a short-lived probe key."""
    store.put(PROBE_KEY, 'ok', 60)
    try:
        return store.get(PROBE_KEY) == 'ok'
    finally:
        store.delete(PROBE_KEY)


def check_health(store: RecordStore) -> bool:
    """Check the health of the record store.

    Returns:
        True if the store is healthy, False otherwise
    """
    try:
        healthy = get_health_status(store)['record_store'].get('healthy', False)

        if healthy:
            logger.info('Record store is healthy')
        else:
            logger.warning('Record store is unhealthy')

        return healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status(store: RecordStore) -> Dict[str, Any]:
    """Get detailed health status of the store.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    try:
        backend_check = getattr(store, 'health_check', None)
        healthy = backend_check() if callable(backend_check) else True
        healthy = healthy and _probe_round_trip(store)
        health_status['record_store'] = {
            'healthy': healthy,
            'service': type(store).__name__,
            'backend': config.store.backend
        }
    except Exception as e:
        health_status['record_store'] = {'healthy': False, 'service': type(store).__name__, 'error': str(e)}

    return health_status


def get_system_info(store: RecordStore, cache_stats: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'convomem',
        'version': '1.0.0',
        'configuration': {
            'store_backend': config.store.backend,
            'record_ttl_days': config.memory.record_ttl_days,
            'index_capacity': config.memory.index_capacity,
            'recall_last_n': config.memory.last_n_turns,
            'recall_top_k': config.memory.top_k
        },
        'caches': cache_stats or {},
        'health_status': get_health_status(store)
    }
