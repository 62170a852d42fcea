"""
CrewAI tool wrappers for hybrid-memory-core.

Requires: pip install hybrid-memory-core[crewai]

Usage:
    from hybrid_memory import MemoryService, MemoryToolGateway
    from hybrid_memory.integrations.crewai import MemorySearchTool

    gateway = MemoryToolGateway(MemoryService())
    agent = Agent(tools=[MemorySearchTool(gateway=gateway)])
"""

from __future__ import annotations

from typing import Any

try:
    from crewai.tools import BaseTool
except ImportError as e:
    raise ImportError(
        "CrewAI integration requires crewai. "
        "Install with: pip install hybrid-memory-core[crewai]"
    ) from e


class MemorySearchTool(BaseTool):
    """CrewAI tool for searching agent memory."""

    name: str = "Memory Search"
    description: str = (
        "Search the agent's hybrid memory. "
        "Returns the most relevant stored memories for a query."
    )

    gateway: Any

    def _run(self, query: str) -> str:
        result = self.gateway.execute("retrieve_memories", {"query": query})
        if not result.get("success"):
            return f"Error: {result.get('error')}"
        return result["memories"]


class MemoryStoreTool(BaseTool):
    """CrewAI tool for storing information to agent memory."""

    name: str = "Memory Store"
    description: str = (
        "Store important information to the agent's memory "
        "so it can be recalled in later tasks."
    )

    gateway: Any
    agent_id: str = "crewai"

    def _run(self, text: str) -> str:
        result = self.gateway.execute("store_memory", {"agent_id": self.agent_id, "content": text})
        if not result.get("success"):
            return f"Error: {result.get('error')}"
        return f"Stored memory {result['memory_id']}."
