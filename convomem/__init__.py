"""
convomem package initialization.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()

from .models.core import MemoryType, Priority, RecallResult, Record, UserProfile  # noqa: E402
from .services.identity import InvalidIdentityError, MemoryManagementError, is_durable  # noqa: E402
from .services.memory_management import MemoryManagementService  # noqa: E402
from .utils.record_store import InMemoryRecordStore, RecordStore, RecordStoreError  # noqa: E402

__version__ = '1.0.0'

__all__ = [
    'MemoryManagementService',
    'MemoryManagementError',
    'InvalidIdentityError',
    'is_durable',
    'Record',
    'RecallResult',
    'UserProfile',
    'MemoryType',
    'Priority',
    'RecordStore',
    'InMemoryRecordStore',
    'RecordStoreError',
]
