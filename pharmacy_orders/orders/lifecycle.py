"""
Order lifecycle rules.

Everything here is a pure function of an order snapshot: stage
classification, the set of actions the pharmacy operator may take, and the
patch plus remote call a transition produces. No store or network access.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, NamedTuple, Optional, Tuple

from .errors import ConfirmationRequired, IllegalTransition
from .model import Action, DeliveryStatus, Order, OrderStatus, Stage

STAGE_LABELS = {
    Stage.PENDING: "Pending",
    Stage.PAYMENT: "Payment",
    Stage.CONFIRMED: "Confirmed",
    Stage.ACCEPTED: "Accepted",
    Stage.REJECTED: "Rejected",
    Stage.PREPARING: "Preparing",
    Stage.OUT_FOR_DELIVERY: "Out for Delivery",
    Stage.DELIVERED: "Delivered",
}

STAGE_ICONS = {
    Stage.PENDING: "time",
    Stage.PAYMENT: "checkmark-circle",
    Stage.CONFIRMED: "checkmark-circle",
    Stage.ACCEPTED: "checkmark-circle",
    Stage.REJECTED: "close-circle",
    Stage.PREPARING: "bag-handle",
    Stage.OUT_FOR_DELIVERY: "car",
    Stage.DELIVERED: "checkmark-done",
}

# Statuses in which the pharmacy may still accept or reject.
NEGOTIABLE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PAYMENT_PENDING,
    OrderStatus.CONFIRMED,
})

_DECIDED_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.REJECTED,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
})

_CONFIRMABLE_STATUSES = frozenset({
    OrderStatus.ACCEPTED,
    OrderStatus.CONFIRMED,
    OrderStatus.PAYMENT_PENDING,
})

# Paid orders in these statuses may be delivered without walking every step.
_DIRECT_DELIVERY_STATUSES = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.PAYMENT_PENDING,
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
})

_IN_DELIVERY = frozenset({DeliveryStatus.PREPARING, DeliveryStatus.OUT_FOR_DELIVERY})

PRIMARY_ORDER = (
    Action.CONFIRM,
    Action.OUT_FOR_DELIVERY,
    Action.MARK_DELIVERED,
    Action.LEGACY_COMPLETE,
)

# Actions the operator must explicitly confirm before they run.
IRREVERSIBLE_ACTIONS = frozenset({Action.REJECT})

# Timestamp field each transition stamps.
TRANSITION_TIMESTAMPS = {
    Action.ACCEPT: "accepted_at",
    Action.REJECT: "rejected_at",
    Action.CONFIRM: "preparing_at",
    Action.OUT_FOR_DELIVERY: "out_for_delivery_at",
    Action.MARK_DELIVERED: "delivered_at",
    Action.LEGACY_COMPLETE: "delivered_at",
}


class RemoteCallKind(str, Enum):
    ACCEPT = "accept"
    STATUS = "status"


class RemoteCall(NamedTuple):
    """The single collaborator API call a transition issues."""

    kind: RemoteCallKind
    order_id: str
    status: str


def classify_stage(order: Order) -> Stage:
    """Map an order to its display stage. deliveryStatus wins over status."""
    status = order.status
    delivery = order.delivery_status

    if delivery == DeliveryStatus.DELIVERED or status in (OrderStatus.COMPLETED, OrderStatus.DELIVERED):
        return Stage.DELIVERED
    if delivery == DeliveryStatus.OUT_FOR_DELIVERY or status == OrderStatus.OUT_FOR_DELIVERY:
        return Stage.OUT_FOR_DELIVERY
    if delivery == DeliveryStatus.PREPARING or status == OrderStatus.PREPARING:
        return Stage.PREPARING
    if status == OrderStatus.PAYMENT_PENDING:
        return Stage.PAYMENT
    if status == OrderStatus.CONFIRMED:
        return Stage.CONFIRMED
    if status == OrderStatus.ACCEPTED:
        return Stage.ACCEPTED
    if status == OrderStatus.REJECTED:
        return Stage.REJECTED
    return Stage.PENDING


def describe_stage(order: Order) -> Tuple[Stage, str, str]:
    stage = classify_stage(order)
    return stage, STAGE_LABELS[stage], STAGE_ICONS[stage]


def _is_legacy(order: Order) -> bool:
    return order.status == OrderStatus.PENDING and not order.payment_confirmed


def _can_decide(order: Order) -> bool:
    if not (order.payment_confirmed or order.status in NEGOTIABLE_STATUSES):
        return False
    if order.pharmacy_accepted or order.pharmacy_rejected:
        return False
    if order.status in _DECIDED_STATUSES:
        return False
    return order.delivery_status is None


def _can_confirm(order: Order, stage: Stage) -> bool:
    return (
        order.status in _CONFIRMABLE_STATUSES
        and order.pharmacy_accepted
        and not order.pharmacy_confirmed
        and order.payment_confirmed
        and stage not in (Stage.PREPARING, Stage.OUT_FOR_DELIVERY, Stage.DELIVERED)
    )


def _can_deliver_directly(order: Order) -> bool:
    return order.payment_confirmed and (
        order.status in _DIRECT_DELIVERY_STATUSES or order.delivery_status in _IN_DELIVERY
    )


def legal_actions(order: Order) -> FrozenSet[Action]:
    """Return every action the operator may currently take on ``order``."""
    if order.is_terminal:
        return frozenset()
    if _is_legacy(order):
        return frozenset({Action.LEGACY_COMPLETE})
    if _can_decide(order):
        return frozenset({Action.ACCEPT, Action.REJECT})

    stage = classify_stage(order)
    actions = set()
    if _can_confirm(order, stage):
        actions.add(Action.CONFIRM)
    if stage == Stage.PREPARING:
        actions.add(Action.OUT_FOR_DELIVERY)
    if stage == Stage.OUT_FOR_DELIVERY:
        actions.add(Action.MARK_DELIVERED)
    if stage != Stage.DELIVERED and _can_deliver_directly(order):
        actions.add(Action.MARK_DELIVERED)
    return frozenset(actions)


def primary_actions(order: Order) -> Tuple[Action, ...]:
    """The action(s) a compact view should surface; the accept/reject pair counts as one."""
    actions = legal_actions(order)
    if Action.ACCEPT in actions:
        return (Action.ACCEPT, Action.REJECT)
    for action in PRIMARY_ORDER:
        if action in actions:
            return (action,)
    return ()


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def plan_transition(
    order: Order,
    action: Action,
    now: Optional[str] = None,
    confirmed: bool = False,
) -> Tuple[Dict[str, Any], RemoteCall]:
    """Validate ``action`` against ``order`` and build its patch and remote call.

    Raises IllegalTransition when the action is not currently legal and
    ConfirmationRequired for an unconfirmed irreversible action.
    """
    action = Action(action)
    legal = legal_actions(order)
    if action not in legal:
        raise IllegalTransition(order.id, action, legal)
    if action in IRREVERSIBLE_ACTIONS and not confirmed:
        raise ConfirmationRequired(order.id, action)

    ts = now or utc_now()
    patch: Dict[str, Any]
    if action == Action.ACCEPT:
        patch = {"pharmacy_accepted": True, "status": OrderStatus.ACCEPTED}
        remote = RemoteCall(RemoteCallKind.ACCEPT, order.id, OrderStatus.ACCEPTED.value)
    elif action == Action.REJECT:
        patch = {"pharmacy_rejected": True, "status": OrderStatus.REJECTED}
        remote = RemoteCall(RemoteCallKind.STATUS, order.id, OrderStatus.REJECTED.value)
    elif action == Action.CONFIRM:
        patch = {
            "status": OrderStatus.PREPARING,
            "delivery_status": DeliveryStatus.PREPARING,
            "pharmacy_confirmed": True,
        }
        remote = RemoteCall(RemoteCallKind.STATUS, order.id, OrderStatus.PREPARING.value)
    elif action == Action.OUT_FOR_DELIVERY:
        patch = {
            "status": OrderStatus.OUT_FOR_DELIVERY,
            "delivery_status": DeliveryStatus.OUT_FOR_DELIVERY,
        }
        remote = RemoteCall(RemoteCallKind.STATUS, order.id, OrderStatus.OUT_FOR_DELIVERY.value)
    elif action == Action.MARK_DELIVERED:
        patch = {"status": OrderStatus.DELIVERED, "delivery_status": DeliveryStatus.DELIVERED}
        remote = RemoteCall(RemoteCallKind.STATUS, order.id, OrderStatus.DELIVERED.value)
    else:
        patch = {"status": OrderStatus.COMPLETED, "delivery_status": DeliveryStatus.DELIVERED}
        remote = RemoteCall(RemoteCallKind.STATUS, order.id, OrderStatus.COMPLETED.value)

    patch[TRANSITION_TIMESTAMPS[action]] = ts
    return patch, remote
