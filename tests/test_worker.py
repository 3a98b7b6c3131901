import asyncio

from pharmacy_orders.common.api_client import ApiError
from pharmacy_orders.polling import worker


class FlakyLifecycle:
    def __init__(self, failures, stop_event):
        self.failures = failures
        self.stop_event = stop_event
        self.calls = 0

    async def refresh(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise ApiError("unreachable")
        self.stop_event.set()
        return 4


async def test_poller_backs_off_then_resets(monkeypatch):
    delays = []

    async def fake_sleep(delay, stop_event):
        delays.append(delay)

    monkeypatch.setattr(worker, "_sleep_or_stop", fake_sleep)
    stop = asyncio.Event()
    lifecycle = FlakyLifecycle(failures=3, stop_event=stop)

    await worker.order_poller(lifecycle, stop, interval=2.0)

    assert lifecycle.calls == 4
    assert delays == [1.0, 2.0, 4.0, 2.0]


async def test_poller_stops_promptly_when_event_set():
    stop = asyncio.Event()

    class Lifecycle:
        calls = 0

        async def refresh(self):
            Lifecycle.calls += 1
            return 0

    task = asyncio.create_task(worker.order_poller(Lifecycle(), stop, interval=60.0))
    await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(task, timeout=1.0)
    assert Lifecycle.calls == 1


async def test_backoff_is_capped(monkeypatch):
    delays = []
    stop = asyncio.Event()

    async def fake_sleep(delay, stop_event):
        delays.append(delay)
        if len(delays) == 8:
            stop.set()

    monkeypatch.setattr(worker, "_sleep_or_stop", fake_sleep)
    await worker.order_poller(FlakyLifecycle(failures=100, stop_event=stop), stop, interval=1.0)
    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]
