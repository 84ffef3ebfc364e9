"""
Actor identity for audit attribution.

Authentication and sessions live outside this package. The engine only
needs to know who performed a mutation, so callers hand it an Actor (or
nothing, in which case the mutation is attributed to "System").
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Actor:
    """Who performs a mutation.

    Attributes:
        actor_id: Stable identifier (usually the e-mail address)
        label: Display name written to the ledger and comment rows
    """

    actor_id: str
    label: str = ""

    @property
    def display(self) -> str:
        return self.label or self.actor_id


SYSTEM = Actor(actor_id="system", label="System")


class IdentityProvider(Protocol):
    """Supplies the active actor, or None when nobody is signed in."""

    def current_actor(self) -> Optional[Actor]: ...


class StaticIdentity:
    """Identity provider that always returns the same actor."""

    def __init__(self, actor: Optional[Actor] = None) -> None:
        self._actor = actor

    def current_actor(self) -> Optional[Actor]:
        return self._actor


def resolve_actor(actor: Optional[Actor]) -> Actor:
    """Fall back to the System actor when no identity is available."""
    return actor if actor is not None else SYSTEM
