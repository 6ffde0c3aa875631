"""
Configuration management for the record store, memory engine and caches.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class StoreConfig:
    """Configuration for the backing key/value record store."""
    backend: str  # 'memory' or 'dynamodb'
    table_name: str
    region: str
    endpoint_url: Optional[str]
    retry_attempts: int
    retry_delay: float


@dataclass
class MemoryConfig:
    """Configuration for recall, retention and lifecycle behaviour."""
    last_n_turns: int = 10
    top_k: int = 5
    index_capacity: int = 5000
    record_ttl_days: int = 30
    session_ttl_days: int = 7
    session_history_limit: int = 20
    checkpoint_threshold: int = 10
    summary_cap: int = 20
    consolidation_threshold: float = 0.5
    decay_high_weeks: float = 4
    decay_medium_weeks: float = 2
    decay_low_weeks: float = 1


@dataclass
class CacheConfig:
    """Configuration for the in-process caches."""
    ttl_seconds: float = 300.0
    capacity: int = 2000
    recall_ttl_seconds: float = 5.0
    recall_capacity: int = 1000
    duplicate_window: int = 128


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    store: StoreConfig
    memory: MemoryConfig
    cache: CacheConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Record store configuration
    store_config = StoreConfig(backend=os.getenv('STORE_BACKEND', 'memory').lower(),
                               table_name=os.getenv('DYNAMODB_TABLE', 'convomem-records'),
                               region=os.getenv('DYNAMODB_AWS_REGION', 'us-east-1'),
                               endpoint_url=os.getenv('DYNAMODB_ENDPOINT_URL') or None,
                               retry_attempts=int(os.getenv('STORE_RETRY_ATTEMPTS', '3')),
                               retry_delay=float(os.getenv('STORE_RETRY_DELAY', '0.2')))

    # Memory engine configuration
    memory_config = MemoryConfig(last_n_turns=int(os.getenv('MEMORY_LAST_N_TURNS', '10')),
                                 top_k=int(os.getenv('MEMORY_TOP_K', '5')),
                                 index_capacity=int(os.getenv('MEMORY_INDEX_CAPACITY', '5000')),
                                 record_ttl_days=int(os.getenv('MEMORY_RECORD_TTL_DAYS', '30')),
                                 session_ttl_days=int(os.getenv('MEMORY_SESSION_TTL_DAYS', '7')),
                                 session_history_limit=int(os.getenv('MEMORY_SESSION_HISTORY_LIMIT', '20')),
                                 checkpoint_threshold=int(os.getenv('MEMORY_CHECKPOINT_THRESHOLD', '10')),
                                 summary_cap=int(os.getenv('MEMORY_SUMMARY_CAP', '20')),
                                 consolidation_threshold=float(os.getenv('MEMORY_CONSOLIDATION_THRESHOLD', '0.5')),
                                 decay_high_weeks=float(os.getenv('MEMORY_DECAY_HIGH_WEEKS', '4')),
                                 decay_medium_weeks=float(os.getenv('MEMORY_DECAY_MEDIUM_WEEKS', '2')),
                                 decay_low_weeks=float(os.getenv('MEMORY_DECAY_LOW_WEEKS', '1')))

    # Cache configuration
    cache_config = CacheConfig(ttl_seconds=float(os.getenv('CACHE_TTL_SECONDS', '300')),
                               capacity=int(os.getenv('CACHE_CAPACITY', '2000')),
                               recall_ttl_seconds=float(os.getenv('RECALL_CACHE_TTL_SECONDS', '5')),
                               recall_capacity=int(os.getenv('RECALL_CACHE_CAPACITY', '1000')),
                               duplicate_window=int(os.getenv('DUPLICATE_WINDOW', '128')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     store=store_config,
                     memory=memory_config,
                     cache=cache_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
