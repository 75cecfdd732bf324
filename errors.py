# Error taxonomy for checkout and payment reconciliation.


class PaymentError(Exception):
    """
    Base class for errors that end up in front of an API caller.
    `message` is safe to show to the client; `status_code` is the HTTP status.
    """
    status_code = 400
    default_message = "Payment request could not be processed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PaymentError):
    default_message = "Invalid request data."


class InvalidQuantity(PaymentError):
    default_message = "Invalid quantity requested."


class InvalidCoupon(PaymentError):
    default_message = "Coupon is not valid for this purchase."


class SubjectNotFound(PaymentError):
    status_code = 404
    default_message = "Nominee or ticket type not found."


class ChargeNotFound(PaymentError):
    status_code = 404
    default_message = "Payment reference not found."


class SoldOut(PaymentError):
    status_code = 409
    default_message = "Not enough tickets left for this ticket type."


class InvalidSignature(PaymentError):
    status_code = 401
    default_message = "Invalid signature"


class ReferenceGenerationFailed(PaymentError):
    status_code = 500
    default_message = "Could not allocate a payment reference."


class GatewayError(PaymentError):
    status_code = 502
    default_message = "Error communicating with payment gateway."


class GatewayUnavailable(GatewayError):
    """Timeouts, connection failures and 5xx answers from the gateway."""
    status_code = 503
    default_message = "Payment gateway is temporarily unavailable."


# --- Projection outcomes (never shown to payers) ---

class ProjectionError(Exception):
    def __init__(self, reason, message):
        super().__init__(message)
        self.reason = reason


class CapacityExceeded(ProjectionError):
    def __init__(self, ticket_type_id, quantity):
        super().__init__(
            'capacity_exceeded',
            f"Ticket type {ticket_type_id} cannot take {quantity} more ticket(s)",
        )
        self.ticket_type_id = ticket_type_id
        self.quantity = quantity


class SubjectMissing(ProjectionError):
    def __init__(self, kind, subject_id):
        super().__init__('subject_missing', f"{kind} subject {subject_id} no longer exists")
        self.kind = kind
        self.subject_id = subject_id
