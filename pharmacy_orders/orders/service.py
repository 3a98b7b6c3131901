import asyncio
import logging
from typing import Callable, List, Optional

from prometheus_client import Counter

from .errors import InvalidOrderRecord, RemoteUpdateFailed, TransitionInProgress
from .lifecycle import RemoteCall, RemoteCallKind, utc_now, plan_transition
from .model import Action, Order
from .store import OrderStore
from ..common.api_client import PharmacyApiClient

_logger = logging.getLogger(__name__)

TRANSITIONS_TOTAL = Counter(
    "order_transitions_total",
    "Order lifecycle transitions by action and outcome",
    ["action", "outcome"],
)


class OrderLifecycleController:
    """Keeps the local order store in step with the collaborator API.

    Transitions are applied optimistically: the store is patched first, then
    exactly one remote call is made, and the patch is rolled back if that
    call fails. At most one transition per order may be in flight.
    """

    def __init__(
        self,
        client: PharmacyApiClient,
        store: Optional[OrderStore] = None,
        clock: Callable[[], str] = utc_now,
    ):
        self.client = client
        self.store = store if store is not None else OrderStore()
        self.clock = clock

    async def refresh(self, **filters) -> int:
        """Re-fetch the order list and replace the store contents. Returns the order count."""
        since = self.store.generation
        records = await self.client.list_orders(**filters)
        orders: List[Order] = []
        for record in records:
            try:
                orders.append(Order.from_record(record))
            except InvalidOrderRecord as e:
                _logger.warning("Skipping invalid order record | err=%s", e)
        held = self.store.replace_all(orders, since=since)
        _logger.debug("Orders refreshed | count=%s held_local=%s", len(orders), held)
        return len(self.store)

    async def apply_transition(self, order_id: str, action: Action, confirmed: bool = False) -> Order:
        order = self.store.require(order_id)
        action = Action(action)
        if not self.store.try_begin(order_id):
            TRANSITIONS_TOTAL.labels(action=action.value, outcome="in_progress").inc()
            raise TransitionInProgress(order_id)

        try:
            try:
                patch, remote = plan_transition(order, action, now=self.clock(), confirmed=confirmed)
            except Exception:
                TRANSITIONS_TOTAL.labels(action=action.value, outcome="refused").inc()
                raise

            snapshot = order
            updated = self.store.apply_patch(order_id, patch)
            try:
                await self._send(remote)
            except asyncio.CancelledError:
                self.store.restore(snapshot)
                raise
            except Exception as e:
                self.store.restore(snapshot)
                TRANSITIONS_TOTAL.labels(action=action.value, outcome="failed").inc()
                _logger.warning(
                    "Remote update failed, rolled back | order_id=%s action=%s err=%s",
                    order_id,
                    action.value,
                    e,
                )
                raise RemoteUpdateFailed(order_id, action, e) from e

            TRANSITIONS_TOTAL.labels(action=action.value, outcome="applied").inc()
            _logger.info(
                "Transition applied | order_id=%s action=%s status=%s",
                order_id,
                action.value,
                updated.status.value,
            )
            return updated
        finally:
            self.store.finish(order_id)

    async def _send(self, call: RemoteCall) -> None:
        if call.kind is RemoteCallKind.ACCEPT:
            await self.client.accept_order(call.order_id)
        else:
            await self.client.update_order_status(call.order_id, call.status)
