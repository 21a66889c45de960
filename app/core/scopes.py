"""
API Key Scopes and the Scope Guard

Scopes:
- read: fetch data (analytics, key listings)
- write: modify data
- admin: wildcard, satisfies every scope check

Session identities are never scoped and always pass. Denial raises
InsufficientScopeError (403), which is distinct from the 401 raised when no
identity resolves.
"""

from enum import Enum
from typing import Iterable, List, Union

from app.core.exceptions import InsufficientScopeError, ValidationFailedError
from app.core.identity import ApiKeyIdentity, Identity


class Scope(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


DEFAULT_SCOPES = (Scope.READ.value, Scope.WRITE.value)

ScopeLike = Union[Scope, str]


def _value(scope: ScopeLike) -> str:
    return scope.value if isinstance(scope, Scope) else scope


def has_scope(scopes: Iterable[ScopeLike], required: ScopeLike) -> bool:
    """Check whether a scope set satisfies `required` (admin is a wildcard)."""
    granted = {_value(s) for s in scopes}
    return _value(required) in granted or Scope.ADMIN.value in granted


def parse_scopes(raw: Iterable[str]) -> List[str]:
    """
    Validate raw scope strings, preserving order and dropping duplicates.

    Raises:
        ValidationFailedError: If any scope is not read/write/admin
    """
    valid = {s.value for s in Scope}
    parsed: List[str] = []
    for scope in raw:
        value = _value(scope)
        if value not in valid:
            raise ValidationFailedError(f"Invalid scope: {value}", {"scopes": f"Invalid scope: {value}"})
        if value not in parsed:
            parsed.append(value)
    return parsed


class ScopeGuard:
    """Decides whether a resolved identity may perform an operation."""

    def check(self, identity: Identity, required: ScopeLike) -> bool:
        if isinstance(identity, ApiKeyIdentity):
            return has_scope(identity.scopes, required)
        # Sessions imply full owner access
        return True

    def enforce(self, identity: Identity, required: ScopeLike) -> None:
        """
        Raise InsufficientScopeError unless `identity` satisfies `required`.

        Args:
            identity: Resolved session or API key identity
            required: Scope the operation needs
        """
        if not self.check(identity, required):
            raise InsufficientScopeError(_value(required))


scope_guard = ScopeGuard()
