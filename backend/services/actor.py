"""
Identité de l'acteur d'une opération.

Passée explicitement à chaque opération du noyau : humain (requête API) ou
SYSTEM (sweeps planifiés). Pas de "user courant" global.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

from backend.app.core.config import Settings, get_settings


class ActorKind(str, enum.Enum):
    human = "human"
    system = "system"


@dataclass(frozen=True)
class Actor:
    user_id: int
    name: str = ""
    kind: ActorKind = ActorKind.human

    @classmethod
    def human(cls, user_id: int, name: str = "") -> "Actor":
        return cls(user_id=int(user_id), name=name, kind=ActorKind.human)

    @classmethod
    def system(cls, settings: Settings | None = None) -> "Actor":
        settings = settings or get_settings()
        return cls(
            user_id=settings.SYSTEM_USER_ID,
            name=settings.SYSTEM_USER_NAME,
            kind=ActorKind.system,
        )

    @property
    def is_system(self) -> bool:
        return self.kind == ActorKind.system
