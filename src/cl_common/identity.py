"""Caller identity handed to the ledger core by the authorization boundary.

The core trusts this value unconditionally; it only checks `is_admin`
for operations that require privilege.
"""

from dataclasses import dataclass

from src.cl_common.errors import PermissionDeniedError


@dataclass(frozen=True)
class CallerIdentity:
    user_id: int
    is_admin: bool = False


def require_admin(caller: CallerIdentity) -> None:
    """Raise PermissionDeniedError unless the caller is an administrator."""
    if not caller.is_admin:
        raise PermissionDeniedError()
