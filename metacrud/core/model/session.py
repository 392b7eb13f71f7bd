"""
Authorization Contract.

A caller is described by a ``SessionInfo``: the numeric level of its session
plus the login/expiry flags echoed in error bodies. Routes and properties
carry required level sets; ``None`` means everyone may pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Dict, FrozenSet, Iterable, Optional

NO_SESSION = -1
ADMIN_LEVEL = 7

EVERYONE: Optional[FrozenSet[int]] = None
ALL_LEVELS: FrozenSet[int] = frozenset(range(NO_SESSION, 11))
ADMIN: FrozenSet[int] = frozenset({ADMIN_LEVEL})


def normalize_levels(levels: Optional[Iterable[int]]) -> Optional[FrozenSet[int]]:
    """Turn a configured level list into the immutable form used for checks.

    Args:
        levels: Configured levels, or ``None`` for everyone

    Returns:
        ``None`` when everyone is allowed, otherwise a frozenset of levels
    """
    if levels is None:
        return EVERYONE
    return frozenset(int(level) for level in levels)


@dataclass(frozen=True)
class SessionInfo:
    """Authorization view of the caller."""

    level: int = NO_SESSION
    logged_in: bool = False
    expired: bool = False

    def has_level(self, required: Optional[AbstractSet[int]]) -> bool:
        return required is None or self.level in required

    def to_dict(self) -> Dict[str, bool]:
        return {"logeada": self.logged_in, "expirada": self.expired}


ANONYMOUS = SessionInfo()
