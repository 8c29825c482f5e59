"""
Production Order State Machine

This module is the SINGLE SOURCE OF TRUTH for order status transitions and
for who may perform them. All status changes go through `authorize()`.

Checks run in a fixed order so callers get the most specific error:
1. state     - is the transition in the table?           (InvalidTransitionError)
2. actor     - role, ownership and planning location      (ForbiddenTransitionError)
3. reason    - rejections and corrections need a reason  (MissingReasonError)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Dict, Iterable, FrozenSet, Tuple

from orderflow.core.exceptions import (
    ForbiddenTransitionError,
    InvalidTransitionError,
    MissingReasonError,
)
from orderflow.core.permissions import Actor
from orderflow.models.order import OrderStatus


class ActorKind(str, Enum):
    """Who a transition rule is granted to."""
    CREATOR = "creator"            # the order's creator (by identity)
    SALES = "sales"
    SUPPLY_CHAIN = "supply_chain"
    PLANNING = "planning"          # scoped to the actor's location
    SYSTEM = "system"


@dataclass(frozen=True)
class TransitionRule:
    source: OrderStatus
    target: OrderStatus
    actors: FrozenSet[ActorKind]
    action: str
    reason_required: bool = False
    correction: bool = False

    @property
    def system_only(self) -> bool:
        return self.actors == frozenset({ActorKind.SYSTEM})


def _rule(source, target, actors, action, reason_required=False, correction=False) -> TransitionRule:
    return TransitionRule(source, target, frozenset(actors), action, reason_required, correction)


# =============================================================================
# TRANSITION RULES
# =============================================================================

TRANSITION_RULES: List[TransitionRule] = [
    _rule(OrderStatus.DRAFT, OrderStatus.SALES_REVIEW,
          {ActorKind.CREATOR}, "Submit for Sales Review"),
    _rule(OrderStatus.SALES_REVIEW, OrderStatus.SUPPLY_CHAIN_REVIEW,
          {ActorKind.SALES}, "Forward to Supply Chain"),
    _rule(OrderStatus.SUPPLY_CHAIN_REVIEW, OrderStatus.PLANNING_REVIEW,
          {ActorKind.SUPPLY_CHAIN}, "Forward to Planning"),
    _rule(OrderStatus.SUPPLY_CHAIN_REVIEW, OrderStatus.REJECTED,
          {ActorKind.SUPPLY_CHAIN, ActorKind.CREATOR}, "Reject", reason_required=True),
    _rule(OrderStatus.SUPPLY_CHAIN_REVIEW, OrderStatus.SALES_REVIEW,
          {ActorKind.SUPPLY_CHAIN}, "Return to Sales for Correction", reason_required=True, correction=True),
    _rule(OrderStatus.PLANNING_REVIEW, OrderStatus.APPROVED,
          {ActorKind.SYSTEM}, "Approved by All Locations"),
    _rule(OrderStatus.PLANNING_REVIEW, OrderStatus.SUPPLY_CHAIN_REVIEW,
          {ActorKind.PLANNING}, "Planning Correction", reason_required=True, correction=True),
    _rule(OrderStatus.PLANNING_REVIEW, OrderStatus.REJECTED,
          {ActorKind.CREATOR}, "Cancelled by Creator", reason_required=True),
    _rule(OrderStatus.APPROVED, OrderStatus.SUPPLY_CHAIN_REVIEW,
          {ActorKind.PLANNING}, "Planning Correction", reason_required=True, correction=True),
    _rule(OrderStatus.APPROVED, OrderStatus.REJECTED,
          {ActorKind.CREATOR, ActorKind.SUPPLY_CHAIN}, "Reject", reason_required=True),
    _rule(OrderStatus.APPROVED, OrderStatus.COMPLETED,
          {ActorKind.SYSTEM}, "Completed Automatically"),
]

TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], TransitionRule] = {
    (rule.source, rule.target): rule for rule in TRANSITION_RULES
}

TERMINAL_STATES = {OrderStatus.REJECTED, OrderStatus.COMPLETED}
ARCHIVABLE_STATES = {OrderStatus.APPROVED, OrderStatus.REJECTED, OrderStatus.COMPLETED}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_rule(current_status: OrderStatus, new_status: OrderStatus) -> Optional[TransitionRule]:
    return TRANSITIONS.get((OrderStatus(current_status), OrderStatus(new_status)))


def can_transition(current_status: OrderStatus, new_status: OrderStatus) -> bool:
    """Check if a transition exists at all (ignoring who performs it)."""
    return get_rule(current_status, new_status) is not None


def get_allowed_transitions(current_status: OrderStatus) -> List[OrderStatus]:
    """Statuses reachable from the current status."""
    current_status = OrderStatus(current_status)
    return [rule.target for rule in TRANSITION_RULES if rule.source == current_status]


def get_transition_action(current_status: OrderStatus, new_status: OrderStatus) -> str:
    """Human-readable action name for a transition."""
    rule = get_rule(current_status, new_status)
    if rule:
        return rule.action
    return f"{OrderStatus(current_status).value} -> {OrderStatus(new_status).value}"


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATES


def can_archive(status: OrderStatus) -> bool:
    return OrderStatus(status) in ARCHIVABLE_STATES


def actor_matches(
    rule: TransitionRule,
    actor: Actor,
    order,
    ledger_locations: Iterable[str] = (),
) -> bool:
    """Does the actor hold one of the grants of `rule` for this order?"""
    if actor.is_system:
        return ActorKind.SYSTEM in rule.actors
    if rule.system_only:
        return False
    if actor.is_admin:
        return True
    if ActorKind.CREATOR in rule.actors and actor.is_creator_of(order):
        return True
    if ActorKind.SALES in rule.actors and actor.is_sales:
        return True
    if ActorKind.SUPPLY_CHAIN in rule.actors and actor.is_supply_chain:
        return True
    if ActorKind.PLANNING in rule.actors and actor.is_planning:
        if actor.has_all_locations:
            return True
        return actor.location in set(ledger_locations)
    return False


def authorize(
    actor: Actor,
    order,
    new_status: OrderStatus,
    reason: Optional[str] = None,
    ledger_locations: Iterable[str] = (),
) -> TransitionRule:
    """
    Validate that `actor` may move `order` to `new_status`.

    Args:
        actor: Caller of the operation
        order: ProductionOrder in its current state
        new_status: Requested status
        reason: Rejection/correction reason
        ledger_locations: Locations with a planning approval row for the
            order (planning actors may only act for their own location)

    Returns:
        The matching TransitionRule

    Raises:
        InvalidTransitionError: Transition not possible from the current status
        ForbiddenTransitionError: Actor may not perform it
        MissingReasonError: Reason required but empty
    """
    current_status = OrderStatus(order.status)
    new_status = OrderStatus(new_status)

    rule = get_rule(current_status, new_status)
    if rule is None:
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            message = f"Order in '{current_status.value}' status cannot be changed. This is a terminal state."
        else:
            message = (
                f"Cannot change order from '{current_status.value}' to '{new_status.value}'. "
                f"Allowed transitions: {', '.join(s.value for s in allowed)}"
            )
        raise InvalidTransitionError(
            message,
            details={
                "current_status": current_status.value,
                "requested_status": new_status.value,
                "allowed": [s.value for s in allowed],
            },
        )

    ledger_locations = list(ledger_locations)
    if not actor_matches(rule, actor, order, ledger_locations):
        if actor.is_planning and ActorKind.PLANNING in rule.actors:
            message = (
                f"Role '{actor.role}' has no planning approval for this order "
                f"(locations: {', '.join(sorted(ledger_locations)) or 'none'})"
            )
        elif rule.system_only:
            message = f"'{rule.action}' is performed automatically and cannot be requested"
        else:
            granted = ", ".join(sorted(kind.value for kind in rule.actors))
            message = f"Role '{actor.role}' may not perform '{rule.action}' (allowed: {granted})"
        raise ForbiddenTransitionError(
            message,
            details={
                "role": actor.role,
                "current_status": current_status.value,
                "requested_status": new_status.value,
            },
        )

    if rule.reason_required and not (reason and reason.strip()):
        raise MissingReasonError(
            f"A reason is required for '{rule.action}'",
            details={"requested_status": new_status.value},
        )

    return rule
