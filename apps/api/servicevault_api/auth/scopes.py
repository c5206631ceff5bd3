"""API key scopes.

Scopes are stored on ``APIKey.scopes`` as a sorted JSON array.
"""

import json
import logging
from typing import Iterable, List, Union

logger = logging.getLogger(__name__)

VALID_SCOPES = {
    "assets:read",
    "assets:write",
    "events:read",
    "events:write",
    "audit:read",
}

# Granted to the first key of a new tenant
DEFAULT_SCOPES = sorted(VALID_SCOPES)


def validate_scopes(scopes: Union[str, Iterable[str], None]) -> List[str]:
    """Parse stored or requested scopes.

    Accepts the stored JSON array or an already-decoded list. Unknown scope
    names are rejected; they would never grant access.

    Raises:
        ValueError: If scopes are not a list of known scope names
    """
    if not scopes:
        return []

    if isinstance(scopes, str):
        try:
            scopes = json.loads(scopes)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in scopes: {e}") from e

    if not isinstance(scopes, list):
        raise ValueError("Scopes must be a JSON array")

    unknown = [scope for scope in scopes if not isinstance(scope, str) or scope not in VALID_SCOPES]
    if unknown:
        raise ValueError(f"Unknown scopes: {unknown}. Valid scopes: {DEFAULT_SCOPES}")

    return list(scopes)


def format_scopes(scopes: Iterable[str]) -> str:
    """Serialize scopes for storage, deduplicated and sorted."""
    return json.dumps(sorted(set(scopes or [])))
