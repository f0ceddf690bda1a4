"""Deterministic request fingerprints for cache keys.

Two requests that differ only in surrounding whitespace, internal spacing or
letter case of the query text map to the same key; everything else in the
request body is part of the key via a canonical JSON serialization.
"""

import hashlib
import json
import re
from typing import Any, Mapping, Optional

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(text: str) -> str:
    """Trim, case-fold and collapse whitespace runs to a single space."""
    return _WHITESPACE_RE.sub(" ", text.strip()).casefold()


def canonical_json(payload: Any) -> str:
    """Stable serialization: sorted keys, compact separators."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def request_fingerprint(
    endpoint: str,
    method: str,
    url: str,
    body: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Compute the cache key for a provider request.

    Args:
        endpoint: Logical endpoint identity (e.g. "exa.search")
        method: HTTP method
        url: Request URL
        body: JSON request body; its "query" field is normalized

    Returns:
        Hex SHA-256 digest
    """
    normalized_body = dict(body or {})
    query = normalized_body.get("query")
    if isinstance(query, str):
        normalized_body["query"] = normalize_query(query)

    material = canonical_json(
        {
            "endpoint": endpoint,
            "method": method.upper(),
            "url": url,
            "body": normalized_body,
        }
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()
