import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from .errors import OrderNotFound
from .model import Order, check_invariants

_logger = logging.getLogger(__name__)


class OrderStore:
    """Orders keyed by id, plus the ids that have a transition in flight.

    Only the transition executor and the refresh path write to it.
    """

    def __init__(self, orders: Iterable[Order] = ()):
        self._orders: Dict[str, Order] = {}
        self._in_flight: Set[str] = set()
        self._generation = 0
        self._written_at: Dict[str, int] = {}
        for order in orders:
            self._orders[order.id] = order

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._orders

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def require(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def all(self) -> List[Order]:
        return list(self._orders.values())

    # -------------------- in-flight tracking --------------------

    def is_in_flight(self, order_id: str) -> bool:
        return order_id in self._in_flight

    def try_begin(self, order_id: str) -> bool:
        """Mark ``order_id`` busy. Returns False if it already was."""
        if order_id in self._in_flight:
            return False
        self._in_flight.add(order_id)
        return True

    def finish(self, order_id: str) -> None:
        self._in_flight.discard(order_id)

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    # -------------------- writes --------------------

    @property
    def generation(self) -> int:
        """Counter bumped by every local write. Capture it before a refresh fetch."""
        return self._generation

    def _mark_written(self, order_id: str) -> None:
        self._generation += 1
        self._written_at[order_id] = self._generation

    def apply_patch(self, order_id: str, patch: Dict[str, Any]) -> Order:
        """Replace the stored order with a patched copy and return the new one."""
        current = self.require(order_id)
        updated = dataclasses.replace(current, **patch)
        check_invariants(updated)
        self._orders[order_id] = updated
        self._mark_written(order_id)
        return updated

    def restore(self, snapshot: Order) -> None:
        self._orders[snapshot.id] = snapshot
        self._mark_written(snapshot.id)

    def replace_all(self, orders: Iterable[Order], since: Optional[int] = None) -> int:
        """Swap in a freshly fetched order list.

        Orders with a transition in flight keep their local (optimistic)
        record until the transition resolves. When ``since`` is given (the
        ``generation`` read before the fetch started), orders written locally
        after that point also keep their local record, since the fetched copy
        predates the write. Returns how many records were held back.
        """
        fresh: Dict[str, Order] = {}
        for order in orders:
            fresh[order.id] = order
        keep = set(self._in_flight)
        if since is not None:
            keep.update(oid for oid, gen in self._written_at.items() if gen > since)
        held = 0
        for order_id in keep:
            local = self._orders.get(order_id)
            if local is not None:
                fresh[order_id] = local
                held += 1
        if held:
            _logger.debug("Refresh kept %s locally written orders", held)
        self._orders = fresh
        return held
