"""Optional agent-framework tool wrappers (LangChain, CrewAI)."""
