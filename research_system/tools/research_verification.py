"""research_verification tool boundary.

Translates a tool call's JSON arguments into a verification request and the
VerificationResult back into camelCase JSON. Protocol framing (MCP or
otherwise) lives outside this package; errors from research_system.errors
propagate to it tagged with the tool name.
"""

from typing import Any

from research_system.errors import ResearchSystemError
from research_system.verification.schemas import MAX_FACTS, MAX_SOURCES, SEARCH_CATEGORIES, VerificationRequest
from research_system.verification.verification_engine import ResearchVerificationEngine

TOOL_NAME = "research_verification"

TOOL_SCHEMA: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": (
        "Research a claim and cross-check it against independent verification "
        "queries, returning sourced facts and a confidence score"
    ),
    "inputSchema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Primary research query",
            },
            "verificationQueries": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Additional queries used to cross-check the primary results",
            },
            "sources": {
                "type": "integer",
                "minimum": 1,
                "maximum": MAX_SOURCES,
                "default": 3,
                "description": "Search results requested per query",
            },
            "minConfidence": {
                "type": "number",
                "minimum": 0,
                "maximum": 1,
                "default": 0.5,
                "description": "Minimum extraction confidence for a fact to be kept",
            },
            "maxFacts": {
                "type": "integer",
                "minimum": 1,
                "maximum": MAX_FACTS,
                "default": 10,
                "description": "Facts kept per search result",
            },
            "category": {
                "type": "string",
                "enum": sorted(SEARCH_CATEGORIES),
                "description": "Optional provider result category",
            },
        },
        "required": ["query"],
    },
}


async def verify_research_tool(
    engine: ResearchVerificationEngine,
    arguments: dict[str, Any],
) -> dict[str, Any]:
    """
    Execute the research_verification tool.

    Args:
        engine: Configured verification engine
        arguments: Tool call arguments, camelCase or snake_case keys

    Returns:
        VerificationResult as camelCase JSON-compatible dict

    Raises:
        ValidationError, APIError, ConfigurationError, DataProcessingError
    """
    try:
        cleaned = (
            {k: v for k, v in arguments.items() if v is not None}
            if isinstance(arguments, dict)
            else arguments
        )
        request = VerificationRequest.parse(cleaned)
        result = await engine.verify(request)
    except ResearchSystemError as e:
        if e.tool_name is None:
            e.tool_name = TOOL_NAME
        raise

    return result.model_dump(by_alias=True, mode="json")
