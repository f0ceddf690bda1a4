"""Tool-call entry points."""

from research_system.tools.research_verification import TOOL_NAME, TOOL_SCHEMA, verify_research_tool

__all__ = ["TOOL_NAME", "TOOL_SCHEMA", "verify_research_tool"]
