from .. utils.money import format_minor


class LedgerError(Exception):
    """Base class for expected, user-facing failures of ledger operations.

    `code` is the stable machine-readable identifier returned by the API,
    `details` carries whatever the client needs to explain the failure
    without re-querying (balances, required amounts).
    """
    code = 'LEDGER_ERROR'
    status_code = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class InsufficientFunds(LedgerError):
    code = 'INSUFFICIENT_FUNDS'
    status_code = 402

    def __init__(self, balance, required, currency=None):
        super().__init__(
            f"Insufficient wallet balance: {format_minor(balance)} available, {format_minor(required)} required",
            {
                'balance': format_minor(balance),
                'required': format_minor(required),
                'currency': currency,
            }
        )
        self.balance = balance
        self.required = required


class InsufficientPoints(LedgerError):
    code = 'INSUFFICIENT_POINTS'
    status_code = 402

    def __init__(self, available, required, minimum=None):
        if minimum is not None and required < minimum:
            message = f"Minimum exchange is {minimum} points"
        else:
            message = f"Insufficient points: {available} available, {required} required"
        super().__init__(message, {'available': available, 'required': required, 'minimum': minimum})
        self.available = available
        self.required = required


class AlreadyClaimed(LedgerError):
    code = 'ALREADY_CLAIMED'
    status_code = 409


class DuplicateReference(LedgerError):
    code = 'DUPLICATE_REFERENCE'
    status_code = 409

    def __init__(self, reference, existing=None):
        super().__init__(f"Reference {reference} has already been recorded", {'reference': reference})
        self.reference = reference
        self.existing = existing


class InvalidCode(LedgerError):
    code = 'INVALID_CODE'
    status_code = 400


class SelfReferral(LedgerError):
    code = 'SELF_REFERRAL'
    status_code = 400


class NotFound(LedgerError):
    code = 'NOT_FOUND'
    status_code = 404


class InvalidTransition(LedgerError):
    code = 'INVALID_TRANSITION'
    status_code = 409


class ValidationError(LedgerError):
    code = 'VALIDATION_ERROR'
    status_code = 400


class Forbidden(LedgerError):
    code = 'FORBIDDEN'
    status_code = 403


class GatewayUnavailable(LedgerError):
    """Transient: the client may start a new deposit/order; never retried server-side."""
    code = 'GATEWAY_UNAVAILABLE'
    status_code = 503
