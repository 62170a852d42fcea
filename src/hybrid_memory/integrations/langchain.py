"""
LangChain tool wrappers for hybrid-memory-core.

Requires: pip install hybrid-memory-core[langchain]

Usage:
    from hybrid_memory import MemoryService, MemoryToolGateway
    from hybrid_memory.integrations.langchain import MemorySearchTool, MemoryStoreTool

    gateway = MemoryToolGateway(MemoryService())
    tools = [MemorySearchTool(gateway=gateway), MemoryStoreTool(gateway=gateway)]
    agent = create_react_agent(llm, tools)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

try:
    from langchain_core.tools import BaseTool
    from pydantic import BaseModel, Field
except ImportError as e:
    raise ImportError(
        "LangChain integration requires langchain-core. "
        "Install with: pip install hybrid-memory-core[langchain]"
    ) from e


def _render(result: Dict[str, Any], key: str) -> str:
    if not result.get("success"):
        return f"Error: {result.get('error', 'unknown error')}"
    return str(result.get(key, ""))


class _SearchInput(BaseModel):
    query: str = Field(description="Search query for memory retrieval")
    limit: int = Field(default=5, description="Number of memories to return")
    agent_id: Optional[str] = Field(default=None, description="Only return this agent's memories")
    tags: List[str] = Field(default_factory=list, description="Keep memories with any of these tags")


class MemorySearchTool(BaseTool):
    """LangChain tool for semantic memory recall."""

    name: str = "memory_search"
    description: str = (
        "Search the agent's memory for relevant context. "
        "Use this to recall facts, preferences, past events and observations."
    )
    args_schema: Type[BaseModel] = _SearchInput

    gateway: Any

    def _run(
        self,
        query: str,
        limit: int = 5,
        agent_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> str:
        result = self.gateway.execute(
            "retrieve_memories",
            {"query": query, "limit": limit, "agent_id": agent_id, "tags": tags or []},
        )
        return _render(result, "memories")


class _StoreInput(BaseModel):
    agent_id: str = Field(description="ID of the agent storing the memory")
    content: str = Field(description="Text to remember")
    importance: float = Field(default=1.0, description="Importance score (0.0-1.0)")
    tags: List[str] = Field(default_factory=list, description="Tags for later filtering")
    related_memory_ids: List[str] = Field(default_factory=list, description="IDs of related memories")


class MemoryStoreTool(BaseTool):
    """LangChain tool for storing information to agent memory."""

    name: str = "memory_store"
    description: str = (
        "Store important information to the agent's memory. "
        "Use for decisions, discoveries, user facts and key events."
    )
    args_schema: Type[BaseModel] = _StoreInput

    gateway: Any

    def _run(
        self,
        agent_id: str,
        content: str,
        importance: float = 1.0,
        tags: Optional[List[str]] = None,
        related_memory_ids: Optional[List[str]] = None,
    ) -> str:
        result = self.gateway.execute(
            "store_memory",
            {
                "agent_id": agent_id,
                "content": content,
                "importance": importance,
                "tags": tags or [],
                "related_memory_ids": related_memory_ids or [],
            },
        )
        if not result.get("success"):
            return _render(result, "message")
        return f"{result['message']} (id: {result['memory_id']})"


class _RelatedInput(BaseModel):
    memory_id: str = Field(description="ID of the memory to start from")
    relationship_type: Optional[str] = Field(default=None, description="Only follow this relation type")


class RelatedMemoryTool(BaseTool):
    """LangChain tool for walking the memory relationship graph."""

    name: str = "memory_related"
    description: str = "List memories and entities linked to a given memory ID."
    args_schema: Type[BaseModel] = _RelatedInput

    gateway: Any

    def _run(self, memory_id: str, relationship_type: Optional[str] = None) -> str:
        result = self.gateway.execute(
            "retrieve_related_memories",
            {"memory_id": memory_id, "relationship_type": relationship_type},
        )
        return _render(result, "related_memories")
