class SPMSError(Exception):
    """Base error for domain failures surfaced to HTTP clients."""
    code = "error"
    status_code = 400

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class NotFoundError(SPMSError):
    """Resource not found"""
    code = "not_found"
    status_code = 404


class InvalidInputError(SPMSError):
    """Invalid input"""
    code = "invalid_input"
    status_code = 400


class InvalidCardError(InvalidInputError):
    """Invalid or missing card"""
    code = "invalid_card"


class AlreadyPaidError(SPMSError):
    """This month is already paid"""
    code = "already_paid"
    status_code = 400


class LeaseExistsError(SPMSError):
    """Property already has an active lease"""
    code = "lease_exists"
    status_code = 409


class UserAlreadyExistsError(SPMSError):
    """User already exists"""
    code = "user_exists"
    status_code = 400


class InvalidCredentialsError(SPMSError):
    """Invalid credentials"""
    code = "invalid_credentials"
    status_code = 404


class PaymentDeclinedError(SPMSError):
    """Payment declined"""
    code = "payment_declined"
    status_code = 402


class ConcurrencyError(SPMSError):
    """Concurrent update conflict, retry the request"""
    code = "conflict"
    status_code = 409


class InternalError(SPMSError):
    """Internal server error"""
    code = "internal"
    status_code = 500


class NoPaymentRecordError(InvalidInputError):
    """No payment record found for this month"""
    code = "no_payment_record"
