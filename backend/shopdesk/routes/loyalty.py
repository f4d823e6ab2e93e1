# Overview: Flask API routes for the loyalty counter tablet and customer self-service balance.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_shop
from ..errors import ShopdeskError, ValidationError
from ..extensions import db
from ..models import Employee
from ..services import loyalty_service
from ..services.concurrency import run_with_retry
from ..services.policy_service import loyalty_policy_for


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/shops/<int:shop_id>/loyalty")


def _acting_employee_id(data: dict) -> int | None:
    """Optional staff id recorded on the transaction; must belong to this shop."""
    employee_id = data.get("employee_id")
    if employee_id is None:
        return None
    employee = db.session.query(Employee).filter_by(id=employee_id, shop_id=g.shop.id).first()
    if not employee:
        raise ValidationError("Unknown employee", field="employee_id")
    return employee.id


def _error_response(e: ShopdeskError):
    return jsonify(e.to_dict()), e.http_status


@loyalty_bp.get("/customers/lookup")
@require_shop
def lookup_customer_route(shop_id):
    try:
        lookup = loyalty_service.lookup_or_init_customer(g.shop.id, request.args.get("phone"))
        return jsonify(lookup.to_dict(loyalty_policy_for(g.shop)))
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Customer lookup failed")
        return jsonify({"error": "Customer lookup failed"}), 500


@loyalty_bp.post("/check-ins")
@require_shop
def check_in_route(shop_id):
    data = request.get_json(silent=True) or {}
    try:
        policy = loyalty_policy_for(g.shop)
        acting_employee_id = _acting_employee_id(data)
        result = run_with_retry(lambda: loyalty_service.award_point(
            shop_id=shop_id,
            phone=data.get("phone"),
            policy=policy,
            acting_employee_id=acting_employee_id,
            name=data.get("name"),
        ))
        return jsonify(result.to_dict(policy)), 201
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Loyalty check-in failed")
        return jsonify({"error": "Loyalty check-in failed"}), 500


@loyalty_bp.post("/redemptions")
@require_shop
def redeem_route(shop_id):
    data = request.get_json(silent=True) or {}
    try:
        policy = loyalty_policy_for(g.shop)
        acting_employee_id = _acting_employee_id(data)
        result = run_with_retry(lambda: loyalty_service.redeem_reward(
            shop_id=shop_id,
            phone=data.get("phone"),
            policy=policy,
            acting_employee_id=acting_employee_id,
        ))
        return jsonify(result.to_dict(policy)), 201
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Reward redemption failed")
        return jsonify({"error": "Reward redemption failed"}), 500


@loyalty_bp.get("/balance")
@require_shop
def balance_route(shop_id):
    try:
        return jsonify(loyalty_service.get_balance(g.shop.id, request.args.get("phone"), loyalty_policy_for(g.shop)))
    except ShopdeskError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Balance lookup failed")
        return jsonify({"error": "Balance lookup failed"}), 500
