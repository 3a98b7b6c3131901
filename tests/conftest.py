import asyncio

import pytest

from pharmacy_orders.orders.model import Order, OrderStatus
from pharmacy_orders.orders.service import OrderLifecycleController
from pharmacy_orders.orders.store import OrderStore

FIXED_NOW = "2026-01-15T09:30:00+00:00"


class FakeApiClient:
    """Records collaborator calls; can be told to fail or to hold calls open.

    ``list_orders`` snapshots ``records`` when called, before waiting on ``list_gate``.
    """

    def __init__(self, records=None):
        self.records = list(records or [])
        self.calls = []
        self.fail_with = None
        self.list_error = None
        self.gate = None
        self.list_gate = None
        self.closed = False

    async def list_orders(self, **filters):
        self.calls.append(("list", filters))
        if self.list_error is not None:
            raise self.list_error
        records = list(self.records)
        if self.list_gate is not None:
            await self.list_gate.wait()
        return records

    async def accept_order(self, order_id):
        return await self._remote(("accept", order_id))

    async def update_order_status(self, order_id, status):
        return await self._remote(("status", order_id, status))

    async def _remote(self, call):
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return {"ok": True}

    async def close(self):
        self.closed = True

    @property
    def remote_calls(self):
        return [c for c in self.calls if c[0] != "list"]


@pytest.fixture
def make_order():
    def _make(order_id="o-1", status=OrderStatus.PENDING, **kwargs):
        return Order(id=order_id, status=OrderStatus(status), **kwargs)

    return _make


@pytest.fixture
def fake_client():
    return FakeApiClient()


@pytest.fixture
def lifecycle(fake_client):
    return OrderLifecycleController(fake_client, store=OrderStore(), clock=lambda: FIXED_NOW)


@pytest.fixture
def wait_in_flight():
    async def _wait(lifecycle, order_id):
        for _ in range(100):
            if lifecycle.store.is_in_flight(order_id):
                return
            await asyncio.sleep(0)
        raise AssertionError(f"{order_id} never went in flight")

    return _wait
