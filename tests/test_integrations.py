"""Tests for LangChain and CrewAI integrations."""

import importlib
import sys
from unittest.mock import MagicMock, patch

import pytest


def _fresh_import(module_name, blocked):
    """Import *module_name* with the *blocked* packages made unimportable."""
    with patch.dict(sys.modules, {name: None for name in blocked}):
        sys.modules.pop(module_name, None)
        try:
            return importlib.import_module(module_name)
        finally:
            sys.modules.pop(module_name, None)


@pytest.fixture
def gateway_mock():
    gw = MagicMock()
    gw.execute.return_value = {"success": True, "memories": "[Memory from x]: hi"}
    return gw


class TestLangChainIntegration:
    """Test LangChain tool wrappers."""

    def test_import_error_without_langchain(self):
        """Import raises a helpful ImportError when langchain-core is missing."""
        with pytest.raises(ImportError, match="hybrid-memory-core\\[langchain\\]"):
            _fresh_import("hybrid_memory.integrations.langchain", ["langchain_core", "langchain_core.tools"])

    def test_search_tool_calls_gateway(self, gateway_mock):
        pytest.importorskip("langchain_core")
        from hybrid_memory.integrations.langchain import MemorySearchTool

        tool = MemorySearchTool(gateway=gateway_mock)
        out = tool._run("hi", limit=3, tags=["work"])

        assert tool.name == "memory_search"
        assert out == "[Memory from x]: hi"
        gateway_mock.execute.assert_called_once_with(
            "retrieve_memories", {"query": "hi", "limit": 3, "agent_id": None, "tags": ["work"]}
        )

    def test_store_tool_reports_id(self, gateway_mock):
        pytest.importorskip("langchain_core")
        from hybrid_memory.integrations.langchain import MemoryStoreTool

        gateway_mock.execute.return_value = {
            "success": True, "message": "Memory stored successfully", "memory_id": "mem_1",
        }
        tool = MemoryStoreTool(gateway=gateway_mock)

        assert tool._run("a1", "remember this") == "Memory stored successfully (id: mem_1)"

    def test_errors_are_rendered(self, gateway_mock):
        pytest.importorskip("langchain_core")
        from hybrid_memory.integrations.langchain import RelatedMemoryTool

        gateway_mock.execute.return_value = {"success": False, "error": "Invalid input: bad"}
        tool = RelatedMemoryTool(gateway=gateway_mock)

        assert tool._run("mem_1") == "Error: Invalid input: bad"

    def test_end_to_end_with_service(self, gateway):
        pytest.importorskip("langchain_core")
        from hybrid_memory.integrations.langchain import MemorySearchTool, MemoryStoreTool

        MemoryStoreTool(gateway=gateway)._run("a1", "The office wifi password is on the fridge")
        gateway.service.flush()
        out = MemorySearchTool(gateway=gateway)._run("office wifi password")

        assert "The office wifi password is on the fridge" in out


class TestCrewAIIntegration:
    """Test CrewAI tool wrappers."""

    def test_import_error_without_crewai(self):
        """Import raises a helpful ImportError when crewai is missing."""
        with pytest.raises(ImportError, match="hybrid-memory-core\\[crewai\\]"):
            _fresh_import("hybrid_memory.integrations.crewai", ["crewai", "crewai.tools"])

    def test_search_tool(self, gateway_mock):
        pytest.importorskip("crewai")
        from hybrid_memory.integrations.crewai import MemorySearchTool

        tool = MemorySearchTool(gateway=gateway_mock)

        assert tool._run("hi") == "[Memory from x]: hi"

    def test_store_tool_uses_agent_id(self, gateway_mock):
        pytest.importorskip("crewai")
        from hybrid_memory.integrations.crewai import MemoryStoreTool

        gateway_mock.execute.return_value = {"success": True, "memory_id": "mem_9"}
        tool = MemoryStoreTool(gateway=gateway_mock, agent_id="planner")

        assert tool._run("note") == "Stored memory mem_9."
        gateway_mock.execute.assert_called_once_with("store_memory", {"agent_id": "planner", "content": "note"})
