"""Research provider access.

- transport: ProviderRequest/ProviderResponse and the httpx transport
- exa_research: ExaResearchClient (import from the submodule)
"""

from research_system.providers.transport import (
    HttpxTransport,
    ProviderRequest,
    ProviderResponse,
    Transport,
)

__all__ = [
    "HttpxTransport",
    "ProviderRequest",
    "ProviderResponse",
    "Transport",
]
