import logging
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request
from sqlalchemy.exc import SQLAlchemyError

from checkout import VOTE_TIERS, CheckoutInitiator
from config import PaymentConfig
from errors import ChargeNotFound, InvalidSignature, ValidationError
from models import COMPLETED, TICKET, VOTE, Category, Charge, Nominee, TicketType, db
from reconciliation import NOT_FOUND, ReconciliationEngine
from schemas import TicketCheckoutRequest, VoteCheckoutRequest

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def payment_config():
    return PaymentConfig.from_mapping(current_app.config)


def checkout_initiator():
    return CheckoutInitiator(payment_config(), current_app.extensions['paystack'])


def reconciliation_engine():
    return ReconciliationEngine(payment_config(), current_app.extensions['paystack'])


def _json_body():
    data = request.get_json(silent=True)
    if not data:
        raise ValidationError("Request body must be valid JSON.")
    return data


@api.route('/status')
def status():
    logger.info("Status check performed.")
    return jsonify({"status": "ok"}), 200


@api.route('/categories', methods=['GET'])
def get_all_categories():
    categories = Category.query.order_by(Category.name).all()
    output = [{'id': c.id, 'name': c.name, 'description': c.description} for c in categories]
    return jsonify({"categories": output}), 200


@api.route('/nominees', methods=['GET'])
def get_all_nominees():
    category_id = request.args.get('category_id', type=int)
    query = Nominee.query
    if category_id:
        if db.session.get(Category, category_id) is None:
            logger.warning(f"Attempt to retrieve nominees for non-existent category with ID: {category_id}")
            return jsonify({"message": "Category not found"}), 404
        query = query.filter_by(category_id=category_id)

    output = [{
        'id': n.id,
        'name': n.name,
        'description': n.description,
        'category_id': n.category_id,
        'category_name': n.category.name,
    } for n in query.order_by(Nominee.name).all()]
    return jsonify({"nominees": output, "vote_tiers": VOTE_TIERS}), 200


@api.route('/ticket-types', methods=['GET'])
def get_available_ticket_types():
    ticket_types = TicketType.query.filter(TicketType.tickets_sold < TicketType.total_available) \
        .order_by(TicketType.name).all()
    output = [{
        'id': t.id,
        'name': t.name,
        'description': t.description,
        'price': f"{t.price:.2f}",
        'remaining': t.remaining,
    } for t in ticket_types]
    return jsonify({"ticket_types": output}), 200


@api.route('/votes/checkout', methods=['POST'])
def initiate_vote_purchase():
    req = VoteCheckoutRequest.from_json(_json_body())
    session = checkout_initiator().initiate(VOTE, req.nominee_id, req.number_of_votes, req.payer)
    return jsonify({
        "status": "REDIRECT_REQUIRED",
        "reference": session.reference,
        "authorization_url": session.checkout_url
    }), 202


@api.route('/tickets/checkout', methods=['POST'])
def initiate_ticket_purchase():
    req = TicketCheckoutRequest.from_json(_json_body())
    session = checkout_initiator().initiate(TICKET, req.ticket_type_id, req.quantity, req.payer,
                                            coupon_code=req.coupon_code)
    return jsonify({
        "status": "REDIRECT_REQUIRED",
        "reference": session.reference,
        "authorization_url": session.checkout_url
    }), 202


# Endpoint for Paystack Webhook
@api.route('/payment/paystack-webhook', methods=['POST'])
def paystack_webhook():
    """
    Called by Paystack's servers, not by the frontend. Anything other than a
    bad signature is acknowledged with 200 so Paystack stops retrying; errors
    are logged for an operator instead.
    """
    raw_body = request.get_data()
    signature = request.headers.get('x-paystack-signature')

    try:
        resolution = reconciliation_engine().handle_webhook(raw_body, signature)
    except InvalidSignature:
        return jsonify({"message": "Invalid signature"}), 401
    except ValidationError as exc:
        logger.warning(f"Discarding malformed Paystack webhook: {exc.message}")
        return jsonify({"message": "Event not handled"}), 200
    except SQLAlchemyError:
        logger.error("Store error while handling a Paystack webhook; acknowledged without changes")
        return jsonify({"message": "Webhook received"}), 200

    if resolution is None:
        return jsonify({"message": "Event not handled"}), 200
    return jsonify({"message": "Webhook processed successfully", "status": resolution.status}), 200


# --- Callback Route ---
@api.route('/payment/paystack-callback', methods=['GET'])
def paystack_callback():
    # Paystack appends ?trxref=<reference>&reference=<reference>
    reference = request.args.get('reference') or request.args.get('trxref')
    if not reference:
        return jsonify({"message": "Missing transaction reference"}), 400

    try:
        resolution = reconciliation_engine().verify_callback(reference)
        status, detail = resolution.status, resolution.detail
    except SQLAlchemyError:
        logger.error(f"Store error while verifying {reference} on callback; reporting it as pending")
        status, detail = 'pending', 'verification_error'

    frontend_url = current_app.config.get('FRONTEND_URL')
    if frontend_url:
        query = urlencode({'reference': reference, 'status': status})
        return redirect(f"{frontend_url.rstrip('/')}/payment-status?{query}")

    body = {"reference": reference, "status": status}
    if detail:
        body["detail"] = detail
    return jsonify(body), 404 if status == NOT_FOUND else 200


@api.route('/charges/<reference>', methods=['GET'])
def get_charge_by_reference(reference):
    charge = Charge.query.filter_by(reference=reference).first()
    if charge is None:
        logger.warning(f"Charge lookup for unknown reference: {reference}")
        raise ChargeNotFound()

    output = {
        'reference': charge.reference,
        'kind': charge.kind,
        'quantity': charge.quantity,
        'amount': charge.amount_minor / 100,
        'currency': charge.currency,
        'status': charge.status,
    }
    if charge.kind == TICKET and charge.status == COMPLETED:
        output['tickets'] = [ticket.to_dict() for ticket in charge.tickets]
    if charge.kind == VOTE:
        output['nominee'] = charge.nominee.name if charge.nominee else None
    return jsonify(output), 200
