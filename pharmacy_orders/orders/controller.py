import logging

from quart import Blueprint, current_app, jsonify, request

from .errors import (
    ConfirmationRequired,
    IllegalTransition,
    OrderLifecycleError,
    OrderNotFound,
    RemoteUpdateFailed,
    TransitionInProgress,
)
from .filters import filter_orders, summarize
from .lifecycle import describe_stage, legal_actions, primary_actions
from .model import Action, Order
from ..common.api_client import ApiError

bp = Blueprint("orders", __name__)
_logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    OrderNotFound: 404,
    IllegalTransition: 409,
    ConfirmationRequired: 409,
    TransitionInProgress: 409,
    RemoteUpdateFailed: 502,
}


def _lifecycle():
    return current_app.lifecycle


def _present(order: Order) -> dict:
    store = _lifecycle().store
    stage, label, icon = describe_stage(order)
    data = order.to_record()
    data.update({
        "stage": stage.value,
        "stageLabel": label,
        "stageIcon": icon,
        "actions": sorted(a.value for a in legal_actions(order)),
        "primaryActions": [a.value for a in primary_actions(order)],
        "inFlight": store.is_in_flight(order.id),
    })
    return data


def _error(e: OrderLifecycleError):
    status = _ERROR_STATUS.get(type(e), 400)
    body = {"ok": False, "error": e.code, "message": str(e)}
    if isinstance(e, IllegalTransition):
        body["allowed"] = e.legal
    return jsonify(body), status


@bp.get("/orders")
async def orders_list():
    store = _lifecycle().store
    try:
        orders = filter_orders(store.all(), request.args.get("filter"), request.args.get("q"))
    except ValueError as e:
        return jsonify({"ok": False, "error": "invalid_filter", "message": str(e)}), 400
    return jsonify({"ok": True, "orders": [_present(o) for o in orders]})


@bp.get("/orders/summary")
async def orders_summary():
    return jsonify({"ok": True, "summary": summarize(_lifecycle().store.all())})


@bp.get("/orders/<order_id>")
async def order_detail(order_id: str):
    try:
        order = _lifecycle().store.require(order_id)
    except OrderNotFound as e:
        return _error(e)
    return jsonify({"ok": True, "order": _present(order)})


@bp.post("/orders/<order_id>/transitions")
async def order_transition(order_id: str):
    data = await request.get_json(force=True, silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({
            "ok": False,
            "error": "invalid_action",
            "message": "Request body must be a JSON object",
        }), 400
    try:
        action = Action(data.get("action"))
    except ValueError:
        return jsonify({
            "ok": False,
            "error": "invalid_action",
            "message": f"Unknown action: {data.get('action')!r}",
        }), 400
    # only a JSON boolean counts as operator confirmation
    confirm = data.get("confirm", False)
    if not isinstance(confirm, bool):
        return jsonify({
            "ok": False,
            "error": "invalid_confirm",
            "message": f"confirm must be true or false, got {confirm!r}",
        }), 400
    try:
        order = await _lifecycle().apply_transition(order_id, action, confirmed=confirm is True)
    except OrderLifecycleError as e:
        return _error(e)
    return jsonify({"ok": True, "order": _present(order)})


@bp.post("/orders/refresh")
async def orders_refresh():
    try:
        count = await _lifecycle().refresh()
    except ApiError as e:
        _logger.warning("Manual refresh failed | err=%s", e)
        return jsonify({"ok": False, "error": "refresh_failed", "message": str(e)}), 502
    return jsonify({"ok": True, "count": count})
