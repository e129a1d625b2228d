"""Permission capability consulted before sending and before enumerating SIMs."""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable, Protocol, Union


class Permission(str, Enum):
    SEND_SMS         = "SEND_SMS"           # required to submit at all
    READ_PHONE_STATE = "READ_PHONE_STATE"   # required to enumerate subscriptions


class PermissionChecker(Protocol):
    def has(self, permission: Union[Permission, str]) -> bool:
        ...


class StaticPermissions:
    """A fixed grant set, usually read from configuration."""

    def __init__(self, granted: Iterable[Union[Permission, str]] = ()) -> None:
        self._granted: FrozenSet[str] = frozenset(_name(p) for p in granted)

    def has(self, permission: Union[Permission, str]) -> bool:
        return _name(permission) in self._granted

    @property
    def granted(self) -> FrozenSet[str]:
        return self._granted


def _name(permission: Union[Permission, str]) -> str:
    if isinstance(permission, Permission):
        return permission.value
    return str(permission).strip().upper()
