"""
HTTP API for ProcureSaathi.

Exposes the marketplace façade over JSON, plus liveness and readiness
probes. The caller is identified by the ``X-Actor-Id`` header; real
authentication happens in front of this service. Affiliate status changes
and activation require that actor to be in the marketplace admin directory.

Error mapping:
    InvalidState, Conflict → 409
    Forbidden              → 403 (generic "Access denied")
    NotFound               → 404
    VerificationFailed     → 401 ({"verified": false, "error": ...})
    malformed input        → 400
"""

import sqlite3
from typing import Any

from flask import Flask, g, jsonify, request

from procure_saathi.kernel.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    NotFound,
    VerificationFailed,
)
from procure_saathi.kernel.logging import (
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from procure_saathi.marketplace import ProcureSaathi

logger = get_logger(__name__)

app = Flask(__name__)

# Global state - will be set by initialize_api_server()
_market: ProcureSaathi | None = None


def initialize_api_server(market: ProcureSaathi) -> None:
    """
    Initialize the API server with a marketplace instance.

    Args:
        market: The façade every route delegates to
    """
    global _market
    _market = market
    logger.info("API server initialized", db_path=str(market.sqlite_path))


def _get_market() -> ProcureSaathi:
    if _market is None:
        raise RuntimeError("API server not initialized")
    return _market


def _actor() -> str:
    actor_id = request.headers.get("X-Actor-Id", "").strip()
    if not actor_id:
        raise Forbidden("missing actor header")
    return actor_id


def _body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    return body


def _json(model: Any) -> Any:
    return model.model_dump(mode="json") if model is not None else None


@app.before_request
def bind_correlation_id() -> None:
    g.correlation_id = request.headers.get("X-Request-Id") or generate_correlation_id()
    set_correlation_id(g.correlation_id)


# ----------------------------------------------------------------------
# Error mapping
# ----------------------------------------------------------------------


@app.errorhandler(InvalidState)
def handle_invalid_state(e: InvalidState):
    return jsonify({"error": str(e), "currentState": e.current_state}), 409


@app.errorhandler(Conflict)
def handle_conflict(e: Conflict):
    return jsonify({"error": str(e), "currentState": e.current_state}), 409


@app.errorhandler(Forbidden)
def handle_forbidden(e: Forbidden):
    logger.warning("Request forbidden", path=request.path, reason=e.reason, actor_id=e.actor_id)
    return jsonify({"error": str(e)}), 403


@app.errorhandler(NotFound)
def handle_not_found(e: NotFound):
    return jsonify({"error": str(e)}), 404


@app.errorhandler(VerificationFailed)
def handle_verification_failed(e: VerificationFailed):
    return jsonify({"verified": False, "error": e.reason}), 401


@app.errorhandler(ValueError)
def handle_bad_request(e: ValueError):
    # pydantic.ValidationError is a ValueError
    return jsonify({"error": str(e)}), 400


# ----------------------------------------------------------------------
# Health probes
# ----------------------------------------------------------------------


@app.route("/health/live", methods=["GET"])
def liveness():
    """Liveness probe - the process is up"""
    return jsonify({"status": "alive", "service": "procure-saathi"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness():
    """
    Readiness probe - the event store answers queries.

    Returns:
        200 with store counts if ready, 503 if not
    """
    if _market is None:
        logger.error("Readiness check failed: marketplace not initialized")
        return jsonify({"status": "not_ready", "reason": "not_initialized"}), 503

    try:
        snapshot = _market.health()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify({"status": "not_ready", "reason": "database_error", "error": str(e)}),
            503,
        )
    return jsonify({"status": "ready", **snapshot}), 200


# ----------------------------------------------------------------------
# Requirements & bids
# ----------------------------------------------------------------------


@app.route("/requirements", methods=["POST"])
def create_requirement():
    body = _body()
    requirement = _get_market().create_requirement(
        buyer_id=_actor(),
        title=body.get("title"),
        category=body.get("category"),
        quantity=body.get("quantity"),
        unit=body.get("unit"),
        delivery_location=body.get("deliveryLocation"),
        deadline=body.get("deadline"),
        trade_type=body.get("tradeType", "domestic_india"),
        description=body.get("description"),
    )
    return jsonify(_json(requirement)), 201


@app.route("/requirements", methods=["GET"])
def list_requirements():
    requirements = _get_market().list_requirements(
        status=request.args.get("status"), buyer_id=request.args.get("buyerId")
    )
    return jsonify([_json(r) for r in requirements]), 200


@app.route("/requirements/<requirement_id>", methods=["GET"])
def get_requirement(requirement_id: str):
    return jsonify(_json(_get_market().get_requirement(requirement_id))), 200


@app.route("/requirements/<requirement_id>/close", methods=["POST"])
def close_requirement(requirement_id: str):
    body = request.get_json(silent=True) or {}
    requirement = _get_market().close_requirement(
        requirement_id, _actor(), body.get("reason", "closed_by_buyer")
    )
    return jsonify(_json(requirement)), 200


@app.route("/requirements/<requirement_id>/cancel", methods=["POST"])
def cancel_requirement(requirement_id: str):
    body = request.get_json(silent=True) or {}
    requirement = _get_market().cancel_requirement(
        requirement_id, _actor(), body.get("reason", "cancelled_by_buyer")
    )
    return jsonify(_json(requirement)), 200


@app.route("/requirements/<requirement_id>/bids", methods=["POST"])
def submit_bid(requirement_id: str):
    body = _body()
    bid = _get_market().submit_bid(
        requirement_id=requirement_id,
        supplier_id=body.get("supplierId") or _actor(),
        bid_amount=body.get("bidAmount"),
        delivery_days=body.get("deliveryDays"),
        terms=body.get("terms"),
    )
    return jsonify(_json(bid)), 200


@app.route("/requirements/<requirement_id>/bids", methods=["GET"])
def list_bids(requirement_id: str):
    views = _get_market().list_bids(requirement_id, request.args.get("order", "amount_asc"))
    return jsonify([_json(v) for v in views]), 200


@app.route("/requirements/<requirement_id>/bids/<bid_id>", methods=["PUT"])
def revise_bid(requirement_id: str, bid_id: str):
    body = _body()
    bid = _get_market().revise_bid(
        requirement_id=requirement_id,
        bid_id=bid_id,
        supplier_id=_actor(),
        bid_amount=body.get("bidAmount"),
        delivery_days=body.get("deliveryDays"),
        terms=body.get("terms"),
    )
    return jsonify(_json(bid)), 200


@app.route("/requirements/<requirement_id>/bids/<bid_id>/accept", methods=["POST"])
def accept_bid(requirement_id: str, bid_id: str):
    result = _get_market().accept_bid(requirement_id, bid_id, _actor())
    return (
        jsonify(
            {
                "requirement": _json(result.requirement),
                "acceptedBid": _json(result.accepted_bid),
                "rejectedBids": [_json(b) for b in result.rejected_bids],
            }
        ),
        200,
    )


@app.route("/suppliers/<supplier_id>/bids", methods=["GET"])
def list_supplier_bids(supplier_id: str):
    if _actor() != supplier_id:
        raise Forbidden("suppliers may only list their own bids")
    return jsonify([_json(b) for b in _get_market().list_supplier_bids(supplier_id)]), 200


@app.route("/suppliers", methods=["POST"])
def register_supplier():
    body = _body()
    profile = _get_market().register_supplier(
        supplier_id=_actor(),
        name=body.get("name"),
        company=body.get("company"),
        phone=body.get("phone"),
        email=body.get("email"),
        address=body.get("address"),
        city=body.get("city"),
        gstin=body.get("gstin"),
        categories=body.get("categories"),
    )
    return jsonify({"supplierId": profile.supplier_id}), 201


# ----------------------------------------------------------------------
# Reveal gate
# ----------------------------------------------------------------------


@app.route("/reveal-requests", methods=["POST"])
def request_reveal():
    body = _body()
    reveal = _get_market().request_reveal(
        requirement_id=body.get("requirementId"),
        supplier_id=body.get("supplierId"),
        bid_id=body.get("bidId"),
        acting_buyer_id=_actor(),
    )
    return jsonify(_json(reveal)), 200


@app.route("/reveal-requests", methods=["GET"])
def list_reveal_requests():
    reveals = _get_market().list_reveal_requests(_actor())
    return jsonify([_json(r) for r in reveals]), 200


@app.route("/reveal-requests/<requirement_id>/<supplier_id>/payment", methods=["POST"])
def confirm_reveal_payment(requirement_id: str, supplier_id: str):
    body = _body()
    market = _get_market()
    if body.get("status", "success") == "failed":
        reveal = market.record_reveal_payment_failure(
            requirement_id, supplier_id, _actor(), body.get("reason", "payment_failed")
        )
    else:
        reveal = market.confirm_reveal_payment(
            requirement_id, supplier_id, _actor(), body.get("paymentReference")
        )
    return jsonify(_json(reveal)), 200


@app.route("/reveal-requests/<requirement_id>/<supplier_id>/confirm", methods=["POST"])
def confirm_reveal(requirement_id: str, supplier_id: str):
    reveal = _get_market().confirm_reveal(requirement_id, supplier_id, _actor())
    return jsonify(_json(reveal)), 200


@app.route("/reveal-requests/<requirement_id>/<supplier_id>/contact", methods=["GET"])
def revealed_contact(requirement_id: str, supplier_id: str):
    contact = _get_market().get_revealed_contact(requirement_id, supplier_id, _actor())
    if contact is None:
        # Not revealed yet: the caller is authorized but there is nothing to show
        raise Forbidden("contact not revealed")
    return jsonify(_json(contact)), 200


# ----------------------------------------------------------------------
# Affiliates
# ----------------------------------------------------------------------


@app.route("/affiliates", methods=["POST"])
def join_affiliate():
    body = request.get_json(silent=True) or {}
    record = _get_market().join_affiliate(_actor(), body.get("referralCode"))
    return jsonify(_json(record)), 201


@app.route("/affiliates", methods=["GET"])
def list_affiliates():
    records = _get_market().list_affiliates(request.args.get("status"))
    return jsonify([_json(r) for r in records]), 200


@app.route("/affiliates/stats", methods=["GET"])
def affiliate_stats():
    return jsonify(_json(_get_market().affiliate_stats())), 200


@app.route("/affiliates/<affiliate_id>/activate-fifo", methods=["POST"])
def activate_fifo(affiliate_id: str):
    result = _get_market().activate_fifo(affiliate_id, _actor())
    return jsonify(result.to_dict()), 200


@app.route("/affiliates/<affiliate_id>/status", methods=["POST"])
def update_affiliate_status(affiliate_id: str):
    body = _body()
    record = _get_market().update_affiliate_status(
        affiliate_id, body.get("status"), _actor(), body.get("reason", "")
    )
    return jsonify(_json(record)), 200


# ----------------------------------------------------------------------
# Role sessions
# ----------------------------------------------------------------------


@app.route("/role-sessions/pin", methods=["POST"])
def set_role_pin():
    body = _body()
    _get_market().set_role_pin(_actor(), body.get("role"), body.get("pin"))
    return jsonify({"pinConfigured": True}), 200


@app.route("/role-sessions/verify", methods=["POST"])
def verify_role():
    body = _body()
    market = _get_market()
    method = body.get("method")
    if method == "pin":
        state = market.verify_with_pin(_actor(), body.get("role"), body.get("credential"))
    elif method == "password":
        state = market.verify_with_password(_actor(), body.get("role"), body.get("credential"))
    else:
        raise ValueError("method must be 'pin' or 'password'")
    return jsonify({"verified": True, "expiresAt": state.expires_at.isoformat()}), 200


@app.route("/role-sessions/<role>", methods=["GET"])
def verification_status(role: str):
    state = _get_market().get_verification(_actor(), role)
    if state is None:
        return jsonify({"verified": False}), 200
    return jsonify({"verified": True, "expiresAt": state.expires_at.isoformat()}), 200


@app.route("/role-sessions", methods=["DELETE"])
def clear_verification():
    cleared = _get_market().clear_verification(_actor(), request.args.get("role"))
    return jsonify({"cleared": [r.value for r in cleared]}), 200


def run_api_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the API server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting API server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug, threaded=True)
