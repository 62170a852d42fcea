"""
Tool-invocation gateway — named operations with JSON-shaped parameters.

Every call returns a dict with ``success``; failures carry an ``error`` string
instead of raising. Parameters are validated before anything is mutated.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from hybrid_memory.exceptions import InvalidInputError
from hybrid_memory.memory import MemoryService

__all__ = ["MemoryToolGateway", "TOOL_SPECS"]

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


def _prop(type_: str, description: str, **extra: Any) -> Dict[str, Any]:
    return {"type": type_, "description": description, **extra}


TOOL_SPECS: List[Dict[str, Any]] = [
    {
        "name": "store_memory",
        "description": "Store a new memory in the system",
        "properties": {
            "agent_id": _prop("string", "ID of the agent storing the memory"),
            "content": _prop("string", "Content of the memory"),
            "importance": _prop("number", "Importance score (0.0-1.0)"),
            "tags": _prop("array", "List of tags for the memory", items={"type": "string"}),
            "related_memory_ids": _prop("array", "List of related memory IDs", items={"type": "string"}),
        },
        "required": ["agent_id", "content"],
    },
    {
        "name": "retrieve_memories",
        "description": "Retrieve memories relevant to a query",
        "properties": {
            "query": _prop("string", "Query to search for relevant memories"),
            "limit": _prop("integer", "Maximum number of memories to retrieve"),
            "agent_id": _prop("string", "Filter by agent ID"),
            "tags": _prop("array", "Keep memories carrying any of these tags", items={"type": "string"}),
            "min_importance": _prop("number", "Minimum importance score (0.0-1.0)"),
        },
        "required": ["query"],
    },
    {
        "name": "retrieve_related_memories",
        "description": "Retrieve memories related to a given memory ID",
        "properties": {
            "memory_id": _prop("string", "ID of the memory to find related memories for"),
            "relationship_type": _prop("string", "Type of relationship to filter by"),
        },
        "required": ["memory_id"],
    },
    {
        "name": "delete_memory",
        "description": "Delete a memory and everything derived from it",
        "properties": {
            "memory_id": _prop("string", "ID of the memory to delete"),
        },
        "required": ["memory_id"],
    },
    {
        "name": "store_user_preference",
        "description": "Store a user preference in the memory system",
        "properties": {
            "key": _prop("string", "Preference key"),
            "value": _prop("string", "Preference value (string, number, boolean or object)"),
            "category": _prop("string", "Preference category"),
            "importance": _prop("number", "Importance score (0.0-1.0)"),
        },
        "required": ["key", "value"],
    },
    {
        "name": "get_user_preferences",
        "description": "Get user preferences from the memory system",
        "properties": {
            "category": _prop("string", "Filter by preference category"),
        },
        "required": [],
    },
    {
        "name": "store_interaction",
        "description": "Store an interaction between user and agent",
        "properties": {
            "agent_id": _prop("string", "ID of the agent involved in the interaction"),
            "user_query": _prop("string", "User's query or input"),
            "agent_response": _prop("string", "Agent's response"),
            "success": _prop("boolean", "Whether the interaction was successful"),
            "importance": _prop("number", "Importance score (0.0-1.0)"),
        },
        "required": ["agent_id", "user_query", "agent_response"],
    },
    {
        "name": "get_recent_interactions",
        "description": "Get recent interactions from the memory system",
        "properties": {
            "agent_id": _prop("string", "Filter by agent ID"),
            "limit": _prop("integer", "Maximum number of interactions to retrieve"),
        },
        "required": [],
    },
    {
        "name": "get_device_context",
        "description": "Get device context information from the memory system",
        "properties": {
            "state_type": _prop("string", "Type of device state to retrieve"),
        },
        "required": [],
    },
    {
        "name": "get_ui_context",
        "description": "Get current UI context based on recent observations",
        "properties": {},
        "required": [],
    },
]


# ----------------------------------------------------------------------
# Parameter helpers
# ----------------------------------------------------------------------


def _require_str(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"'{name}' is required and must be a non-empty string")
    return value


def _optional_str(params: Mapping[str, Any], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"'{name}' must be a string")
    return value


def _optional_number(params: Mapping[str, Any], name: str, default: float) -> float:
    value = params.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"'{name}' must be a number")
    return float(value)


def _optional_int(params: Mapping[str, Any], name: str, default: int) -> int:
    value = params.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise InvalidInputError(f"'{name}' must be an integer")
    return int(value)


def _optional_bool(params: Mapping[str, Any], name: str, default: bool) -> bool:
    value = params.get(name)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidInputError(f"'{name}' must be a boolean")
    return value


def _optional_str_list(params: Mapping[str, Any], name: str) -> List[str]:
    value = params.get(name)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise InvalidInputError(f"'{name}' must be a list of strings")
    return list(value)


class MemoryToolGateway:
    """Expose a :class:`MemoryService` as named tools for agents and MCP-style servers."""

    def __init__(self, service: MemoryService) -> None:
        self.service = service
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], Result]] = {
            "store_memory": self._store_memory,
            "retrieve_memories": self._retrieve_memories,
            "retrieve_related_memories": self._retrieve_related_memories,
            "delete_memory": self._delete_memory,
            "store_user_preference": self._store_user_preference,
            "get_user_preferences": self._get_user_preferences,
            "store_interaction": self._store_interaction,
            "get_recent_interactions": self._get_recent_interactions,
            "get_device_context": self._get_device_context,
            "get_ui_context": self._get_ui_context,
        }

    # ------------------------------------------------------------------
    # Discovery / dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def list_tools() -> List[Dict[str, Any]]:
        """Tool descriptors with a JSON-schema ``input_schema`` each."""
        return [
            {
                "name": spec["name"],
                "description": spec["description"],
                "input_schema": {
                    "type": "object",
                    "properties": dict(spec["properties"]),
                    "required": list(spec["required"]),
                },
            }
            for spec in TOOL_SPECS
        ]

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    def execute(self, tool_name: str, parameters: Optional[Mapping[str, Any]] = None) -> Result:
        """Run *tool_name*. Never raises."""
        handler = self._handlers.get(tool_name)
        if handler is None:
            return {"success": False, "error": f"Unsupported tool: {tool_name}"}
        if parameters is None:
            parameters = {}
        if not isinstance(parameters, Mapping):
            return {"success": False, "error": "Parameters must be a JSON object"}
        try:
            return handler(parameters)
        except InvalidInputError as e:
            return {"success": False, "error": f"Invalid input: {e}"}
        except Exception as e:
            logger.exception("Tool %s failed", tool_name)
            return {"success": False, "error": f"Error executing {tool_name}: {e}"}

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _store_memory(self, p: Mapping[str, Any]) -> Result:
        agent_id = _require_str(p, "agent_id")
        content = _require_str(p, "content")
        importance = _optional_number(p, "importance", 1.0)
        tags = _optional_str_list(p, "tags")
        related = _optional_str_list(p, "related_memory_ids")
        memory_id = self.service.store(agent_id, content, importance, tags, related)
        return {"success": True, "message": "Memory stored successfully", "memory_id": memory_id}

    def _retrieve_memories(self, p: Mapping[str, Any]) -> Result:
        query = _require_str(p, "query")
        limit = _optional_int(p, "limit", 5)
        agent_id = _optional_str(p, "agent_id")
        tags = _optional_str_list(p, "tags")
        min_importance = _optional_number(p, "min_importance", 0.0)
        memories = self.service.retrieve_relevant(query, limit, agent_id, tags, min_importance)
        return {"success": True, "memories": memories}

    def _retrieve_related_memories(self, p: Mapping[str, Any]) -> Result:
        memory_id = _require_str(p, "memory_id")
        relationship_type = _optional_str(p, "relationship_type")
        related = self.service.retrieve_related(memory_id, relationship_type)
        return {"success": True, "related_memories": related}

    def _delete_memory(self, p: Mapping[str, Any]) -> Result:
        memory_id = _require_str(p, "memory_id")
        deleted = self.service.delete(memory_id)
        message = "Memory deleted" if deleted else "Memory not found"
        return {"success": True, "deleted": deleted, "message": message}

    def _store_user_preference(self, p: Mapping[str, Any]) -> Result:
        key = _require_str(p, "key")
        if p.get("value") is None:
            raise InvalidInputError("'value' is required")
        category = _optional_str(p, "category") or "general"
        importance = _optional_number(p, "importance", 1.0)
        self.service.store_user_preference(key, p["value"], category, importance)
        return {"success": True, "message": "Preference stored successfully"}

    def _get_user_preferences(self, p: Mapping[str, Any]) -> Result:
        category = _optional_str(p, "category")
        return {"success": True, "preferences": self.service.get_user_preferences_context(category)}

    def _store_interaction(self, p: Mapping[str, Any]) -> Result:
        agent_id = _require_str(p, "agent_id")
        user_query = _require_str(p, "user_query")
        agent_response = _require_str(p, "agent_response")
        success = _optional_bool(p, "success", True)
        importance = _optional_number(p, "importance", 1.0)
        self.service.store_interaction(agent_id, user_query, agent_response, success, importance)
        return {"success": True, "message": "Interaction stored successfully"}

    def _get_recent_interactions(self, p: Mapping[str, Any]) -> Result:
        agent_id = _optional_str(p, "agent_id")
        limit = _optional_int(p, "limit", 5)
        return {"success": True, "interactions": self.service.get_recent_interactions_context(agent_id, limit)}

    def _get_device_context(self, p: Mapping[str, Any]) -> Result:
        state_type = _optional_str(p, "state_type")
        return {"success": True, "device_context": self.service.get_device_context_info(state_type)}

    def _get_ui_context(self, p: Mapping[str, Any]) -> Result:
        return {"success": True, "ui_context": self.service.get_ui_context()}
