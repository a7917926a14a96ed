"""
Role-based access policy for lead data.

  admin          : unscoped; may narrow to one field rep by name
  account_manager: own records only (assignment = own display name)
  field_rep      : own records only; a requested target name is ignored

Fail-closed: a non-admin without a display name, an unknown role, or any
non-admin on a source that carries no assignment columns gets a denial,
never a widened scope.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from metrics.models import UserProfile

logger = logging.getLogger(__name__)


class Role:
    FIELD_REP = "field_rep"
    ACCOUNT_MANAGER = "account_manager"
    ADMIN = "admin"

    ALL = frozenset({FIELD_REP, ACCOUNT_MANAGER, ADMIN})

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls.ALL


class Assignment:
    """Logical assignment attributes; each source maps them to its own columns."""
    FIELD_REP = "field_rep"
    ACCOUNT_MANAGER = "account_manager"


class AccessDeniedError(Exception):
    """The caller's role does not allow this read."""


@dataclass(frozen=True)
class FilterSpec:
    denied: bool = False
    field: Optional[str] = None
    value: Optional[str] = None

    @property
    def is_scoped(self) -> bool:
        return self.field is not None

    @classmethod
    def unrestricted(cls) -> "FilterSpec":
        return cls()

    @classmethod
    def deny(cls) -> "FilterSpec":
        return cls(denied=True)

    @classmethod
    def match(cls, field: str, value: str) -> "FilterSpec":
        return cls(field=field, value=value)


def scope_filter(
    user: UserProfile,
    explicit_target_name: Optional[str] = None,
    supports_attribution: bool = True,
) -> FilterSpec:
    """
    Decide how a fetch for `user` must be scoped.

    Args:
        user: The signed-in profile.
        explicit_target_name: Rep name an admin wants to narrow to.
        supports_attribution: False for sources without rep/manager columns.
    """
    role = user.role
    name = (user.name or "").strip()

    if role == Role.ADMIN:
        target = (explicit_target_name or "").strip()
        if target:
            return FilterSpec.match(Assignment.FIELD_REP, target)
        return FilterSpec.unrestricted()

    if not supports_attribution:
        logger.info(f"Access denied: role={role} on a source without assignment columns")
        return FilterSpec.deny()

    if role == Role.FIELD_REP and name:
        return FilterSpec.match(Assignment.FIELD_REP, name)

    if role == Role.ACCOUNT_MANAGER and name:
        return FilterSpec.match(Assignment.ACCOUNT_MANAGER, name)

    logger.info(f"Access denied: role={role!r} name={'set' if name else 'missing'} (user={user.id})")
    return FilterSpec.deny()
