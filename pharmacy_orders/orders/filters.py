from typing import Callable, Dict, Iterable, List, Optional

from .model import DeliveryStatus, Order, OrderStatus

FILTER_ALL = "all"


def _is_pending(order: Order) -> bool:
    return order.status in (OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING, OrderStatus.CONFIRMED)


def _is_completed(order: Order) -> bool:
    return (
        order.status in (OrderStatus.COMPLETED, OrderStatus.DELIVERED)
        or order.delivery_status == DeliveryStatus.DELIVERED
    )


def _is_accepted(order: Order) -> bool:
    return order.pharmacy_accepted and not _is_completed(order)


def _is_rejected(order: Order) -> bool:
    return order.pharmacy_rejected or order.status == OrderStatus.REJECTED


FILTERS: Dict[str, Callable[[Order], bool]] = {
    "pending": _is_pending,
    "accepted": _is_accepted,
    "completed": _is_completed,
    "rejected": _is_rejected,
}


def matches_search(order: Order, term: str) -> bool:
    term = (term or "").strip().lower()
    if not term:
        return True
    prescription = order.prescription or {}
    haystack = [
        order.patient_name or "",
        order.patient_phone or "",
        str(prescription.get("doctorName") or ""),
        str(prescription.get("diagnosis") or ""),
    ]
    haystack.extend(m.name for m in order.medicines)
    return any(term in value.lower() for value in haystack)


def filter_orders(orders: Iterable[Order], tab: Optional[str] = None, search: Optional[str] = None) -> List[Order]:
    """Apply an operator list tab (pending/accepted/completed/rejected) and a free-text search."""
    tab = (tab or FILTER_ALL).lower()
    if tab != FILTER_ALL and tab not in FILTERS:
        raise ValueError(f"Unknown filter: {tab}")
    predicate = FILTERS.get(tab)
    result = []
    for order in orders:
        if predicate is not None and not predicate(order):
            continue
        if not matches_search(order, search or ""):
            continue
        result.append(order)
    return result


def summarize(orders: Iterable[Order]) -> Dict[str, int]:
    orders = list(orders)
    summary = {FILTER_ALL: len(orders)}
    for name, predicate in FILTERS.items():
        summary[name] = sum(1 for o in orders if predicate(o))
    return summary
