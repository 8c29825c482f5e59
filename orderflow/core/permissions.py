"""
Actors and roles.

Role strings come from the identity service:
    sales | supply_chain | planning | planning_<location> | admin

`planning_<location>` is scoped to one site; the bare `planning` role is the
legacy all-locations planning capability. The system actor performs
automatic transitions (aggregated approval, auto-completion).
"""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActorRole(str, Enum):
    """Base roles (planning roles may carry a location suffix)."""
    SALES = "sales"
    SUPPLY_CHAIN = "supply_chain"
    PLANNING = "planning"
    ADMIN = "admin"
    SYSTEM = "system"


PLANNING_PREFIX = "planning_"

SYSTEM_ACTOR_ID = uuid.UUID(int=0)


def parse_role(role: str) -> tuple[ActorRole, Optional[str]]:
    """Split a role string into base role and planning location.

    >>> parse_role("planning_North")
    (<ActorRole.PLANNING: 'planning'>, 'North')
    """
    role = (role or "").strip()
    if role.startswith(PLANNING_PREFIX) and len(role) > len(PLANNING_PREFIX):
        return ActorRole.PLANNING, role[len(PLANNING_PREFIX):]
    try:
        return ActorRole(role), None
    except ValueError:
        raise ValueError(f"Unknown role: {role!r}")


@dataclass(frozen=True)
class Actor:
    """The caller of a workflow operation, passed explicitly to every service."""
    id: Optional[uuid.UUID]
    name: str
    role: str

    def __post_init__(self):
        # Fails fast on unknown roles
        parse_role(self.role)

    @property
    def base_role(self) -> ActorRole:
        return parse_role(self.role)[0]

    @property
    def location(self) -> Optional[str]:
        """Planning location encoded in the role, if any."""
        return parse_role(self.role)[1]

    @property
    def is_system(self) -> bool:
        return self.base_role == ActorRole.SYSTEM

    @property
    def is_admin(self) -> bool:
        return self.base_role == ActorRole.ADMIN

    @property
    def is_sales(self) -> bool:
        return self.base_role == ActorRole.SALES

    @property
    def is_supply_chain(self) -> bool:
        return self.base_role == ActorRole.SUPPLY_CHAIN

    @property
    def is_planning(self) -> bool:
        return self.base_role == ActorRole.PLANNING

    @property
    def has_all_locations(self) -> bool:
        """Legacy planning role without a location suffix."""
        return self.is_planning and self.location is None

    def can_act_for_location(self, location: str) -> bool:
        if self.is_admin or self.has_all_locations:
            return True
        return self.is_planning and self.location == location

    def is_creator_of(self, order) -> bool:
        # Identity comparison only; display names are never used for ownership
        return self.id is not None and order.created_by_id == self.id

    def as_payload(self) -> dict:
        return {
            "id": str(self.id) if self.id else None,
            "name": self.name,
            "role": self.role,
        }


SYSTEM_ACTOR = Actor(id=SYSTEM_ACTOR_ID, name="System", role=ActorRole.SYSTEM.value)
