import asyncio
import logging
from typing import Optional

from ..common.config import settings
from ..orders.service import OrderLifecycleController

_logger = logging.getLogger(__name__)

MAX_BACKOFF = 30.0


async def _sleep_or_stop(delay: float, stop_event: Optional[asyncio.Event]) -> None:
    if stop_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass


async def order_poller(
    lifecycle: OrderLifecycleController,
    stop_event: Optional[asyncio.Event] = None,
    interval: Optional[float] = None,
):
    """
    Periodically re-fetches the pharmacy's order list into the local store.
    - Orders with a transition in flight keep their optimistic local record
    - Resilient to API outages: backs off exponentially, resets after a good refresh
    """
    interval = settings.POLL_INTERVAL if interval is None else interval
    backoff = 1.0
    _logger.info("Order poller started | interval=%ss", interval)
    while True:
        if stop_event and stop_event.is_set():
            break
        try:
            count = await lifecycle.refresh()
            _logger.debug("Order poll ok | orders=%s", count)
            backoff = 1.0  # reset after successful refresh
            delay = interval
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _logger.warning("Order poll failed, will retry | err=%s backoff=%ss", e, backoff)
            delay = backoff
            backoff = min(backoff * 2, MAX_BACKOFF)
        await _sleep_or_stop(delay, stop_event)
    _logger.info("Order poller stopped")
