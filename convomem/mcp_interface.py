"""
MCP Interface Layer using fastmcp for agent orchestration.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from .services.memory_management import MemoryManagementError, MemoryManagementService
from .utils.config import config
from .utils.health_check import get_system_info
from .utils.logging_config import get_logger

logger = get_logger(__name__)

# Initialize FastMCP application
mcp = FastMCP('Conversational Memory')
memory_service = MemoryManagementService()


def _tool_error(operation: str, error: Exception) -> Exception:
    logger.error(f'Memory management error in MCP {operation}: {error}')
    return Exception(f'Memory {operation} failed: {error}')


@mcp.tool()
def recall_memories(user_id: str,
                    query: str,
                    session_history: Optional[List[Dict[str, str]]] = None,
                    last_n: int = 10,
                    top_k: int = 5) -> Dict[str, Any]:
    """Recall recent turns and similar long-term memories for a user.

    Args:
        user_id: User ID (guests get short-term context only)
        query: Natural language query
        session_history: Current conversation as role/content dicts, oldest first
        last_n: Number of recent turns to return (default: 10)
        top_k: Maximum number of similar memories (default: 5)

    Returns:
        Dict with 'short_term' turns and 'similar' memory records
    """
    result = memory_service.recall(user_id, session_history or [], query, last_n=last_n, top_k=top_k)
    logger.debug(f'MCP recall returned {len(result.similar)} similar memories')
    return result.to_dict()


@mcp.tool()
def remember_fact(user_id: str, fact_type: str, value: str, priority: int = 2) -> Optional[str]:
    """Save a key fact (e.g. name, location) about a user.

    Returns:
        ID of the stored memory, or None if nothing was stored
    """
    try:
        return memory_service.save_user_fact(user_id, fact_type, value, priority)
    except MemoryManagementError as e:
        raise _tool_error('save', e)


@mcp.tool()
def record_conversation_turn(user_id: str, session_id: str, role: str, content: str) -> Optional[str]:
    """Record one conversation turn and capture any key facts it states.

    Returns:
        ID of the stored turn, or None if nothing was stored
    """
    try:
        record_id = memory_service.record_turn(user_id, session_id, role, content)
        if role == 'user':
            memory_service.capture_facts(user_id, content)
        return record_id
    except MemoryManagementError as e:
        raise _tool_error('record', e)


@mcp.tool()
def forget_last_memory(user_id: str) -> bool:
    """Delete the most recent memory of a user."""
    try:
        return memory_service.forget_last(user_id)
    except MemoryManagementError as e:
        raise _tool_error('forget', e)


@mcp.tool()
def set_memory_opt_out(user_id: str, opt_out: bool) -> bool:
    """Turn memory off (True) or back on (False) for a user."""
    try:
        return memory_service.set_opt_out(user_id, opt_out)
    except MemoryManagementError as e:
        raise _tool_error('opt-out', e)


@mcp.tool()
def forget_user(user_id: str) -> bool:
    """Delete every memory, fact and profile field stored for a user."""
    try:
        return memory_service.delete_all_user_memories(user_id)
    except MemoryManagementError as e:
        raise _tool_error('deletion', e)


@mcp.tool()
def get_user_memory_profile(user_id: str) -> Dict[str, Any]:
    """Key facts, preferences and opt-out flag of a user."""
    return memory_service.get_user_profile(user_id).to_dict()


@mcp.tool()
def run_memory_maintenance(user_id: str, purge_decayed: bool = False) -> Dict[str, int]:
    """Consolidate near-duplicate memories and apply priority-based decay.

    Returns:
        Counts of merged records and records still active after decay
    """
    try:
        merged = memory_service.consolidate_memories(user_id)
        active = memory_service.apply_decay(user_id, purge=purge_decayed)
        return {'merged': merged, 'active': len(active)}
    except MemoryManagementError as e:
        raise _tool_error('maintenance', e)


@mcp.tool()
def memory_health() -> Dict[str, Any]:
    """Store health and effective configuration."""
    return get_system_info(memory_service.store, memory_service.cache.stats())


if __name__ == '__main__':
    transport = config.mcp.transport
    host = config.mcp.host
    port = config.mcp.port
    mcp.run(transport=transport, host=host, port=port)
