"""
Operator API for vendors, the outreach queue and the audit trail.
"""
from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from outreach.api import api_bp
from outreach.api.helpers import parse_task_status, unsubscribe_page, vendor_fields_from_json
from outreach.errors import StaleVendorError, VendorNotFound
from outreach.logging_config import get_logger
from outreach.vendors.events import VendorStatus

logger = get_logger(__name__)


def _context():
    from outreach import get_context
    return get_context(current_app)


@api_bp.route("/vendors", methods=["POST"])
def create_vendor():
    """Register a vendor. A vendor created as ``qualified`` starts outreach immediately."""
    data = request.get_json(silent=True) or {}
    vendor_id = data.get("id")
    if not vendor_id:
        return jsonify({"error": "id is required"}), 400

    ctx = _context()
    if ctx.vendor_store.get(vendor_id) is not None:
        return jsonify({"error": f"Vendor {vendor_id} already exists"}), 409

    status = data.get("status", VendorStatus.PENDING_REVIEW)
    if status not in VendorStatus.ALL:
        return jsonify({"error": f"Unknown vendor status: {status}"}), 400

    vendor = ctx.vendor_store.create(vendor_id, status=VendorStatus.PENDING_REVIEW,
                                     **vendor_fields_from_json(data))
    if status != VendorStatus.PENDING_REVIEW:
        ctx.lifecycle.change_status(vendor_id, status, source="api")
        vendor = ctx.vendor_store.get(vendor_id)

    return jsonify(vendor.to_dict()), 201


@api_bp.route("/vendors/<vendor_id>", methods=["GET"])
def get_vendor(vendor_id):
    vendor = _context().vendor_store.get(vendor_id)
    if vendor is None:
        return jsonify({"error": f"Vendor {vendor_id} not found"}), 404
    return jsonify(vendor.to_dict()), 200


@api_bp.route("/vendors/<vendor_id>", methods=["PATCH"])
def update_vendor(vendor_id):
    """Update profile fields (contact details, engagement) without touching status."""
    data = request.get_json(silent=True) or {}
    fields = vendor_fields_from_json(data)
    if not fields:
        return jsonify({"error": "No updatable fields supplied"}), 400

    try:
        vendor = _context().vendor_store.update(vendor_id, fields, expected_version=data.get("version"))
    except VendorNotFound as e:
        return jsonify({"error": str(e)}), 404
    except StaleVendorError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(vendor.to_dict()), 200


@api_bp.route("/vendors/<vendor_id>/status", methods=["POST"])
def change_vendor_status(vendor_id):
    """
    Move a vendor through the lifecycle.

    Body: {"status": "...", "source": "..."}
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in VendorStatus.ALL:
        return jsonify({"error": f"Unknown vendor status: {status}"}), 400

    ctx = _context()
    try:
        event = ctx.lifecycle.change_status(vendor_id, status, source=data.get("source", "api"))
    except VendorNotFound as e:
        return jsonify({"error": str(e)}), 404
    except StaleVendorError as e:
        return jsonify({"error": str(e)}), 409

    vendor = ctx.vendor_store.get(vendor_id)
    return jsonify({
        "changed": event is not None,
        "vendor": vendor.to_dict(),
    }), 200


@api_bp.route("/vendors/<vendor_id>/activities", methods=["GET"])
def vendor_activities(vendor_id):
    limit = request.args.get('limit', 100, type=int)
    entries = _context().audit_log.for_subject(vendor_id, limit=limit)
    return jsonify({
        "vendor_id": vendor_id,
        "activities": [entry.to_dict() for entry in entries],
        "total": len(entries),
    }), 200


@api_bp.route("/queue/tasks", methods=["GET"])
def list_queue_tasks():
    try:
        status = parse_task_status(request.args.get('status'))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    limit = request.args.get('limit', 100, type=int)
    subject_id = request.args.get('subject_id')
    tasks = _context().task_store.list_tasks(subject_id=subject_id, status=status, limit=limit)
    return jsonify({
        "tasks": [task.to_dict() for task in tasks],
        "total": len(tasks),
        "filters": {"subject_id": subject_id, "status": status.value if status else None, "limit": limit},
    }), 200


@api_bp.route("/queue/status", methods=["GET"])
def queue_status():
    ctx = _context()
    try:
        counts = ctx.task_store.counts_by_status()
    except SQLAlchemyError as e:
        logger.error("Error getting queue status", error=str(e))
        return jsonify({"status": "error", "message": f"Could not get status: {str(e)}"}), 500
    return jsonify({
        "counts": counts,
        "tick_lock": ctx.tick_lock.get_status(),
        "worker_id": ctx.dispatcher.worker_id,
    }), 200


@api_bp.route("/queue/tick", methods=["POST"])
def run_tick():
    """Run one dispatcher tick now."""
    result = _context().dispatcher.tick()
    status_code = 200 if result.ran else 409
    return jsonify(result.to_dict()), status_code


@api_bp.route("/queue/sweep", methods=["POST"])
def run_sweep():
    """Requeue tasks whose claim lease has expired."""
    swept = _context().dispatcher.sweep()
    return jsonify({"swept": [task.to_dict() for task in swept], "total": len(swept)}), 200


@api_bp.route("/unsubscribe", methods=["GET", "POST"])
def unsubscribe():
    """Opt-out link target from outreach emails."""
    vendor_id = request.args.get('vendorId') or request.args.get('vendor_id')
    if not vendor_id:
        return unsubscribe_page("Invalid link", "This unsubscribe link is missing a vendor id."), 400

    try:
        changed = _context().lifecycle.unsubscribe(vendor_id)
    except VendorNotFound:
        return unsubscribe_page("Invalid link", "We could not find your record."), 404

    logger.info("Vendor unsubscribed", vendor_id=vendor_id, changed=changed)
    return unsubscribe_page(
        "You have been unsubscribed",
        "You will no longer receive outreach emails from us.",
    ), 200
