from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from vesitrail.exceptions import ValidationError
from vesitrail.models import Settings, admin_required
from vesitrail.services import scheduler as scheduler_service
from vesitrail.utils import request_data

bp = Blueprint("settings", __name__)


@bp.route("/", methods=["GET", "POST"])
@login_required
@admin_required
def index():
    """Booklet reconciliation schedule and last run."""
    if request.method == "POST":
        data = request_data(request)
        schedule = (data.get("reconcile_schedule") or "").strip().lower()
        if schedule not in Settings.RECONCILE_SCHEDULES:
            raise ValidationError(
                "Schedule must be one of: hourly, daily, weekly (or empty to disable)",
                field="reconcile_schedule",
            )
        Settings.set("booklet_reconcile_schedule", schedule)
        if current_app.config.get("SCHEDULER_ENABLED"):
            scheduler_service.apply_schedule(current_app._get_current_object())

    return jsonify(Settings.get_reconcile_status())


@bp.route("/run-reconcile", methods=["POST"])
@login_required
@admin_required
def run_reconcile():
    """Reconcile every booklet's status now instead of waiting for the schedule."""
    updated = scheduler_service.run_reconcile(current_app._get_current_object())
    return jsonify(updated=updated, **Settings.get_reconcile_status())
