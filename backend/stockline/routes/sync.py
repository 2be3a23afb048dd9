# backend/stockline/routes/sync.py
"""
Offline queue routes.

A terminal that lost its connection posts writes here (or to its local
instance) to be replayed later; an operator can inspect, replay or clear
the queue.
"""

from flask import Blueprint, current_app, jsonify, request

from ..services.notifications import CollectingNotifier
from ..services.offline_queue import OPERATION_TYPES, QueueStorageError, operation_summary
from ..services.sync_service import StaticConnectivity, SyncCoordinator


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.errorhandler(QueueStorageError)
def queue_storage_error(e):
    current_app.logger.exception("Offline queue storage failed")
    return jsonify({"error": e.message}), 500


def _coordinator(notifier: CollectingNotifier) -> SyncCoordinator:
    # This process serves requests, so it is by definition online
    return SyncCoordinator(
        current_app.extensions["offline_queue"],
        StaticConnectivity(True),
        notifier,
        poll_interval=current_app.config.get("QUEUE_POLL_INTERVAL_SECONDS", 5.0),
    )


@sync_bp.get("/queue")
def list_queue():
    queue = current_app.extensions["offline_queue"]
    operations = queue.get_all()
    return jsonify({
        "count": len(operations),
        "operations": [operation_summary(op) for op in operations],
    }), 200


@sync_bp.post("/queue")
def enqueue():
    """
    Queue a write for later replay.

    Body: {type: insert|update|delete, table, data}
    """
    data = request.get_json() or {}
    op_type = data.get("type")
    table = data.get("table")
    payload = data.get("data")

    if op_type not in OPERATION_TYPES:
        return jsonify({"error": f"type must be one of {', '.join(OPERATION_TYPES)}"}), 400
    if not table:
        return jsonify({"error": "table required"}), 400
    if not isinstance(payload, dict):
        return jsonify({"error": "data must be an object"}), 400

    notifier = CollectingNotifier()
    coordinator = _coordinator(notifier)
    operation_id = coordinator.queue_operation(op_type, table, payload)

    return jsonify({
        "id": operation_id,
        "queue_count": coordinator.queue_count,
        "messages": notifier.to_list(),
    }), 201


@sync_bp.post("/run")
def run_sync():
    """Replay the queue now. Failed operations stay queued."""
    notifier = CollectingNotifier()
    coordinator = _coordinator(notifier)
    result = coordinator.sync_now()

    counts = result.to_dict() if result is not None else {"success": 0, "failed": 0}
    return jsonify({
        **counts,
        "queue_count": coordinator.queue_count,
        "messages": notifier.to_list(),
    }), 200


@sync_bp.delete("/queue")
def clear_queue():
    current_app.extensions["offline_queue"].clear()
    return jsonify({"count": 0}), 200
