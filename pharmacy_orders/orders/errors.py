from enum import Enum
from typing import Any, Iterable, Optional


def _name(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class OrderLifecycleError(Exception):
    """Base class for errors raised while driving an order through its lifecycle."""

    code = "order_lifecycle_error"


class InvalidOrderRecord(ValueError):
    code = "invalid_order_record"


class OrderNotFound(OrderLifecycleError):
    code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class IllegalTransition(OrderLifecycleError):
    code = "illegal_transition"

    def __init__(self, order_id: str, action: Any, legal: Iterable[Any] = ()):
        self.order_id = order_id
        self.action = _name(action)
        self.legal = sorted(_name(a) for a in legal)
        super().__init__(
            f"Order {order_id} cannot '{self.action}' in its current state "
            f"(allowed: {', '.join(self.legal) or 'none'})"
        )


class ConfirmationRequired(OrderLifecycleError):
    code = "confirmation_required"

    def __init__(self, order_id: str, action: Any):
        self.order_id = order_id
        self.action = _name(action)
        super().__init__(f"'{self.action}' on order {order_id} is irreversible and must be confirmed")


class TransitionInProgress(OrderLifecycleError):
    code = "transition_in_progress"

    def __init__(self, order_id: str):
        super().__init__(f"A transition for order {order_id} is already in progress, please wait")
        self.order_id = order_id


class RemoteUpdateFailed(OrderLifecycleError):
    code = "remote_update_failed"

    def __init__(self, order_id: str, action: Any, reason: Optional[BaseException] = None):
        self.order_id = order_id
        self.action = _name(action)
        self.reason = reason
        super().__init__(f"Could not apply '{self.action}' to order {order_id}: {reason}")
