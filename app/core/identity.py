"""
Resolved request identities.

An authenticated request resolves to exactly one of these. They are never
persisted.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Union


@dataclass(frozen=True)
class SessionIdentity:
    """A user signed in through the web session. Sessions are not scoped."""
    user_id: str
    email: Optional[str] = None

    @property
    def auth_type(self) -> str:
        return "session"


@dataclass(frozen=True)
class ApiKeyIdentity:
    """A caller presenting a valid API key."""
    user_id: str
    key_id: str
    scopes: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def auth_type(self) -> str:
        return "api_key"


Identity = Union[SessionIdentity, ApiKeyIdentity]
