import asyncio
import logging
import os
import time
from typing import Optional

from quart import Quart, jsonify, request

from .common.api_client import PharmacyApiClient
from .common.config import settings
from .orders.controller import bp as orders_bp
from .orders.service import OrderLifecycleController
from .polling.worker import order_poller

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


log = logging.getLogger(__name__)

INSTANCE_ID = os.getenv("INSTANCE_ID", "unknown")

REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)


def _normalize_endpoint(path: str) -> str:
    # Group dynamic routes to keep label cardinality bounded
    if path.startswith("/orders/") and path.endswith("/transitions"):
        return "/orders/<id>/transitions"
    if path in ("/orders/summary", "/orders/refresh"):
        return path
    if path.startswith("/orders/"):
        return "/orders/<id>"
    return path


def create_app(
    client: Optional[PharmacyApiClient] = None,
    lifecycle: Optional[OrderLifecycleController] = None,
    poll: Optional[bool] = None,
) -> Quart:
    app = Quart(__name__)

    if lifecycle is None:
        lifecycle = OrderLifecycleController(client or PharmacyApiClient())
    app.lifecycle = lifecycle
    app.poll_enabled = settings.POLL_ENABLED if poll is None else poll

    app.register_blueprint(orders_bp)

    @app.before_request
    async def before_request():
        request._start_time = time.time()
        log.info(f"[Instance {INSTANCE_ID}] {request.method} {request.path}")

    @app.after_request
    async def after_request(response):
        try:
            if hasattr(request, "_start_time"):
                duration = time.time() - request._start_time
                endpoint = _normalize_endpoint(request.path)
                REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status=str(response.status_code)
                ).inc()
                response.headers['X-Instance-ID'] = INSTANCE_ID
        except Exception as e:
            log.error(f"Error recording metrics: {e}")
        return response

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        return jsonify({
            "status": "ok",
            "orders": len(app.lifecycle.store),
            "inFlight": len(app.lifecycle.store.in_flight),
        })

    @app.before_serving
    async def startup():
        logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
        if not app.poll_enabled:
            log.info("Order polling disabled.")
            return
        app.background_tasks = getattr(app, "background_tasks", set())
        stop_event = asyncio.Event()
        app._poll_stop = stop_event
        task = asyncio.create_task(order_poller(app.lifecycle, stop_event))
        app.background_tasks.add(task)
        log.info("Order poller scheduled.")

    @app.after_serving
    async def shutdown():
        stop_event = getattr(app, "_poll_stop", None)
        if stop_event:
            stop_event.set()
        for t in getattr(app, "background_tasks", set()):
            try:
                await asyncio.wait_for(t, timeout=2.0)
            except Exception:
                t.cancel()
        await app.lifecycle.client.close()
        log.info("Shutdown complete.")

    return app
