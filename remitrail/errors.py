"""
Error taxonomy for quoting, routing and the settlement pipeline.

Every error carries a stable ``code`` and the HTTP status the API layer
should answer with. Quote and validation errors are raised synchronously;
pipeline errors are recorded on the payment and surface through status reads.
"""


class PaymentError(Exception):
    """Base class for all orchestration errors."""

    code = "PAYMENT_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self)


# --- Quote / validation ----------------------------------------------------


class InvalidAmount(PaymentError):
    """Amount must be greater than zero."""
    code = "INVALID_AMOUNT"


class AmountExceedsLimit(PaymentError):
    """Amount exceeds the maximum transaction limit."""
    code = "AMOUNT_EXCEEDS_LIMIT"


class UnsupportedCorridor(PaymentError):
    """No exchange rate is configured for this currency corridor."""
    code = "UNSUPPORTED_CORRIDOR"


class QuoteNotFound(PaymentError):
    """Quote not found."""
    code = "QUOTE_NOT_FOUND"
    status_code = 404


class QuoteExpired(PaymentError):
    """Quote has expired."""
    code = "QUOTE_EXPIRED"
    status_code = 410


class QuoteAlreadyUsed(PaymentError):
    """Quote is already attached to an active payment."""
    code = "QUOTE_ALREADY_USED"
    status_code = 409


# --- Routing ---------------------------------------------------------------


class NoSuitableRail(PaymentError):
    """No payment rail satisfies the transfer requirements."""
    code = "NO_SUITABLE_RAIL"
    status_code = 422


# --- Pipeline steps --------------------------------------------------------


class ComplianceRejected(PaymentError):
    """Compliance screening rejected the payment."""
    code = "COMPLIANCE_REJECTED"
    status_code = 403


class ConversionFailed(PaymentError):
    """Currency conversion failed."""
    code = "CONVERSION_FAILED"
    status_code = 502


class TransferFailed(PaymentError):
    """On-chain transfer failed."""
    code = "TRANSFER_FAILED"
    status_code = 502


class SettlementFailed(PaymentError):
    """Bank settlement failed."""
    code = "SETTLEMENT_FAILED"
    status_code = 502


# --- Payment lifecycle -----------------------------------------------------


class PipelineAlreadyRunning(PaymentError):
    """A settlement pipeline has already been scheduled for this payment."""
    code = "PIPELINE_ALREADY_RUNNING"
    status_code = 409


class PaymentNotFound(PaymentError):
    """Payment not found."""
    code = "PAYMENT_NOT_FOUND"
    status_code = 404


class CancellationNotAllowed(PaymentError):
    """Payment cannot be cancelled at this stage."""
    code = "CANCELLATION_NOT_ALLOWED"
    status_code = 409


class InvalidStateTransition(PaymentError):
    """Requested status change is not allowed from the current status."""
    code = "INVALID_STATE_TRANSITION"
    status_code = 409
