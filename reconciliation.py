"""
Payment reconciliation.

Two independent signals can report on the same charge: Paystack's webhook
(push) and the payer's browser returning from checkout (pull, verified
against Paystack). Either may arrive first, twice, or never. Both go
through `resolve`, which flips a pending charge exactly once using a
compare-and-swap on its status and applies the aggregate increments in
the same transaction.
"""
import datetime as dt
import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from errors import GatewayError, GatewayUnavailable, InvalidSignature, ProjectionError
from models import COMPLETED, FAILED, PENDING, Charge, db
from paystack import signature_matches
from projector import AggregateProjector
from schemas import WebhookEvent

logger = logging.getLogger(__name__)
alerts = logging.getLogger('reconciliation.alerts')

WEBHOOK = 'webhook'
CALLBACK = 'callback'

NOT_FOUND = 'not_found'

# Paystack verify statuses that end a transaction without payment
GATEWAY_FAILED_STATUSES = {'failed', 'abandoned', 'reversed'}


@dataclass(frozen=True)
class Resolution:
    reference: str
    status: str
    applied: bool = False
    flagged: bool = False
    detail: str | None = None


class ReconciliationEngine:
    def __init__(self, config, gateway, projector=None):
        self.config = config
        self.gateway = gateway
        self.projector = projector or AggregateProjector()

    def handle_webhook(self, raw_body, signature):
        """
        Authenticates and applies one webhook delivery.

        Returns None for events that carry nothing to reconcile.
        Raises InvalidSignature before the ledger is touched.
        """
        if not signature_matches(self.config.webhook_secret, raw_body, signature):
            logger.warning("Paystack webhook received with missing or invalid signature.")
            raise InvalidSignature()

        event = WebhookEvent.from_body(raw_body)
        logger.info(f"Paystack webhook received: event={event.event}, reference={event.reference}")

        if not (event.is_success or event.is_failure):
            logger.info(f"Unhandled Paystack event type: {event.event}")
            return None
        if not event.reference:
            logger.warning(f"Paystack {event.event} webhook without a reference; ignoring")
            return None

        return self.resolve(event.reference, event.is_success, amount=event.amount, channel=WEBHOOK)

    def verify_callback(self, reference):
        """
        Pull-side check for a payer returning from checkout. Asks Paystack for
        the authoritative status only while the charge is still pending.
        """
        charge = self._find_charge(reference, CALLBACK)
        if charge is None:
            logger.warning(f"Callback for unknown reference: {reference}")
            return Resolution(reference, NOT_FOUND)
        if charge.is_terminal:
            return Resolution(reference, charge.status)

        try:
            data = self.gateway.verify_transaction(reference)
        except GatewayUnavailable:
            logger.warning(f"Could not verify {reference} with Paystack; leaving it pending")
            return Resolution(reference, PENDING, detail='verification_unavailable')
        except GatewayError as exc:
            logger.warning(f"Paystack refused verification of {reference}: {exc.message}")
            return Resolution(reference, PENDING, detail='verification_failed')

        gateway_status = (data.get('status') or '').lower()
        if gateway_status == 'success':
            return self.resolve(reference, True, amount=data.get('amount'), channel=CALLBACK)
        if gateway_status in GATEWAY_FAILED_STATUSES:
            return self.resolve(reference, False, channel=CALLBACK)

        logger.info(f"Paystack reports {reference} as '{gateway_status}'; still pending")
        return Resolution(reference, PENDING, detail=gateway_status or None)

    def resolve(self, reference, succeeded, amount=None, channel=WEBHOOK):
        """
        Moves a pending charge to completed or failed. Repeated or late
        signals for a terminal charge are no-ops. Store errors are rolled
        back and re-raised.
        """
        charge = self._find_charge(reference, channel)
        if charge is None:
            logger.warning(f"No charge for reference {reference} ({channel}); acknowledging without changes")
            return Resolution(reference, NOT_FOUND)
        if charge.is_terminal:
            logger.debug(f"Charge {reference} already {charge.status}; ignoring {channel} signal")
            return Resolution(reference, charge.status)

        failure_reason = None
        review_reason = None
        if succeeded and amount is not None and int(amount) < charge.amount_minor:
            logger.warning(f"Amount mismatch for {reference}: expected={charge.amount_minor}, paid={amount}")
            succeeded = False
            failure_reason = review_reason = 'amount_mismatch'
        elif not succeeded:
            failure_reason = 'payment_failed'

        new_status = COMPLETED if succeeded else FAILED
        expected = charge.amount_minor
        try:
            won = self._transition(charge.id, new_status, channel, failure_reason, review_reason)
            if not won:
                db.session.rollback()
                current = db.session.get(Charge, charge.id)
                logger.debug(f"Charge {reference} was resolved concurrently as {current.status}")
                return Resolution(reference, current.status)

            flagged = review_reason is not None
            if new_status == COMPLETED:
                flagged = self._project(charge)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Error resolving charge {reference} via {channel}")
            raise

        if review_reason == 'amount_mismatch':
            # Money was captured but nothing is credited
            alerts.error(f"MANUAL RECONCILIATION REQUIRED: charge {reference} was underpaid "
                         f"({amount} of {expected}) and marked failed")
        logger.info(f"Charge {reference} marked {new_status} via {channel}")
        return Resolution(reference, new_status, applied=True, flagged=flagged)

    def _find_charge(self, reference, channel):
        try:
            return Charge.query.filter_by(reference=reference).first()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception(f"Error looking up charge {reference} via {channel}")
            raise

    def _transition(self, charge_id, new_status, channel, failure_reason, review_reason=None):
        values = dict(status=new_status, resolved_via=channel, resolved_at=dt.datetime.now(),
                      failure_reason=failure_reason)
        if review_reason:
            values.update(needs_review=True, review_reason=review_reason)
        result = db.session.execute(
            update(Charge)
            .where(Charge.id == charge_id, Charge.status == PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _project(self, charge):
        """Returns True when the charge had to be flagged for an operator."""
        reasons = []
        try:
            self.projector.credit(charge)
        except ProjectionError as exc:
            reasons.append(exc.reason)
            alerts.error(f"MANUAL RECONCILIATION REQUIRED: charge {charge.reference} completed "
                         f"but was not credited ({exc})")

        if charge.coupon_id is not None and not reasons:
            if not self.projector.redeem_coupon(charge.coupon_id):
                reasons.append('coupon_exhausted')
                alerts.error(f"Coupon {charge.coupon_id} exceeded its usage limit on charge {charge.reference}")

        if not reasons:
            return False

        db.session.execute(
            update(Charge)
            .where(Charge.id == charge.id)
            .values(needs_review=True, review_reason=', '.join(reasons))
            .execution_options(synchronize_session=False)
        )
        return True
