"""Who triggered a transition.

``Actor`` is a closed union: a human ``UserActor`` or the ``SYSTEM``
singleton used by scheduled sweeps and payment callbacks.  Audit records
store ``UserActor.user_id`` and ``NULL`` for the system.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class UserActor:
    user_id: int
    is_admin: bool = False
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or f"user:{self.user_id}"


@dataclass(frozen=True)
class SystemActor:
    @property
    def label(self) -> str:
        return "system"


SYSTEM = SystemActor()

Actor = Union[UserActor, SystemActor]


def actor_for_user(user: Any) -> UserActor:
    """Build a ``UserActor`` from an authenticated Django user.

    Staff users are admins: they may perform override transitions.
    """
    return UserActor(
        user_id=user.pk,
        is_admin=bool(user.is_staff),
        display_name=user.get_username(),
    )


def actor_user_id(actor: Actor) -> Optional[int]:
    match actor:
        case UserActor(user_id=user_id):
            return user_id
        case SystemActor():
            return None
    raise TypeError(f"Unknown actor type: {type(actor).__name__}")
