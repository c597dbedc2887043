"""Role permissions: single pure function over a static table.

Global roles decide administrative capabilities (who may manage users and
access rules). They do not decide document visibility: for non-admins that
is the job of time-boxed access rules (services.access_service).

Design:
    - Roles: admin, contributor, reader
    - A permission is an (action, resource) pair
    - admin holds every permission; nothing is inherited implicitly
"""

from typing import Dict, FrozenSet, Tuple

Permission = Tuple[str, str]

_ROLE_PERMISSIONS: Dict[str, FrozenSet[Permission]] = {
    "admin": frozenset({
        ("create", "user"),
        ("read", "user"),
        ("update", "user"),
        ("delete", "user"),
        ("create", "document"),
        ("read", "document"),
        ("update", "document"),
        ("delete", "document"),
        ("manage", "permissions"),
        ("manage", "system"),
    }),
    "contributor": frozenset({
        ("create", "document"),
        ("read", "document"),
        ("update", "document"),
        ("delete", "document"),
    }),
    "reader": frozenset({
        ("read", "document"),
    }),
}


def has_permission(role: str, action: str, resource: str) -> bool:
    """Check whether *role* may perform *action* on *resource*.

    Unknown roles have no permissions.
    """
    return (action, resource) in _ROLE_PERMISSIONS.get(role, frozenset())


def permissions_for(role: str) -> FrozenSet[Permission]:
    """All (action, resource) pairs granted to *role*."""
    return _ROLE_PERMISSIONS.get(role, frozenset())
