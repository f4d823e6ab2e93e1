# Overview: Flask API routes for staff devices; PIN entry, shift sessions and task checklists.

"""
Clock Routes

Devices are stateless: every staff call carries the PIN (JSON body "pin",
or the X-Staff-Pin header on GET). X-Device-Id identifies the tablet or
handset for PIN throttling.

SECURITY:
- Every PIN check goes through pin_throttle_service (5 failures -> lockout).
- Session operations additionally require a usable PIN (not expired,
  no forced change); the device routes to change-pin on 403 pin_change_required.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_shop
from ..errors import ShopdeskError
from ..services import geofence_service, pin_service, shift_service
from ..services.concurrency import run_with_retry
from ..services.pin_throttle_service import verify_pin_throttled
from ..services.policy_service import shift_policy_for


clock_bp = Blueprint("clock", __name__, url_prefix="/api/shops/<int:shop_id>/clock")


def _authenticate(data: dict):
    pin = data.get("pin") or request.headers.get("X-Staff-Pin")
    employee_id = data.get("employee_id") or request.args.get("employee_id", type=int)
    return verify_pin_throttled(
        g.shop.id,
        pin,
        device_id=request.headers.get("X-Device-Id"),
        employee_id=employee_id,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def _error_response(e: ShopdeskError):
    return jsonify(e.to_dict()), e.http_status


@clock_bp.post("/verify-pin")
@require_shop
def verify_pin_route(shop_id):
    data = request.get_json(silent=True) or {}
    try:
        employee = _authenticate(data)
        return jsonify({
            "employee": employee.to_dict(),
            "current_status": shift_service.get_current_status(employee),
        })
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("PIN verification failed")
        return jsonify({"error": "PIN verification failed"}), 500


@clock_bp.post("/change-pin")
@require_shop
def change_pin_route(shop_id):
    data = request.get_json(silent=True) or {}
    try:
        employee = _authenticate(data)
        employee_id = employee.id
        employee = run_with_retry(lambda: pin_service.change_pin(
            employee_id=employee_id,
            new_pin=data.get("new_pin"),
            confirm_pin=data.get("confirm_pin"),
        ))
        return jsonify({
            "employee": employee.to_dict(),
            "pin_status": pin_service.check_pin_lifecycle(employee).to_dict(),
        })
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("PIN change failed")
        return jsonify({"error": "PIN change failed"}), 500


@clock_bp.get("/status")
@require_shop
def status_route(shop_id):
    try:
        employee = _authenticate({})
        return jsonify(shift_service.get_current_status(employee))
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Status lookup failed")
        return jsonify({"error": "Status lookup failed"}), 500


@clock_bp.post("/sessions")
@require_shop
def open_session_route(shop_id):
    data = request.get_json(silent=True) or {}
    try:
        employee = _authenticate(data)
        policy = shift_policy_for(g.shop)
        result = run_with_retry(lambda: shift_service.open_or_resume_session(
            employee=employee,
            policy=policy,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        ))
        return jsonify(result.to_dict()), 200 if result.resumed else 201
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Clock-in failed")
        return jsonify({"error": "Clock-in failed"}), 500


@clock_bp.post("/sessions/<int:session_id>/tasks/<int:task_id>/toggle")
@require_shop
def toggle_task_route(shop_id, session_id, task_id):
    data = request.get_json(silent=True) or {}
    try:
        employee = _authenticate(data)
        session = run_with_retry(lambda: shift_service.toggle_task(
            employee=employee,
            session_id=session_id,
            task_id=task_id,
        ))
        return jsonify({"session": session.to_dict(), "incomplete_tasks": session.incomplete_task_names})
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Task toggle failed")
        return jsonify({"error": "Task toggle failed"}), 500


@clock_bp.post("/sessions/<int:session_id>/close")
@require_shop
def close_session_route(shop_id, session_id):
    data = request.get_json(silent=True) or {}
    try:
        employee = _authenticate(data)
        session = run_with_retry(lambda: shift_service.close_session(
            employee=employee,
            session_id=session_id,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        ))
        return jsonify({"session": session.to_dict()})
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Clock-out failed")
        return jsonify({"error": "Clock-out failed"}), 500


@clock_bp.get("/sessions/<int:session_id>/remoteness")
@require_shop
def remoteness_route(shop_id, session_id):
    try:
        employee = _authenticate({})
        session = shift_service.get_employee_session(employee.id, session_id)
        remoteness = geofence_service.evaluate_remoteness(session, shift_policy_for(g.shop))
        return jsonify({"session_id": session.id, "remoteness": remoteness.to_dict()})
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Remoteness check failed")
        return jsonify({"error": "Remoteness check failed"}), 500
