from rest_framework import status


class LifecycleError(Exception):
    """Base class for every failure a lifecycle operation reports to its caller."""
    code = 'lifecycle_error'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def as_dict(self):
        return {'error': self.message, 'code': self.code}


class IllegalTransition(LifecycleError):
    code = 'illegal_transition'
    status_code = status.HTTP_409_CONFLICT


class PaymentHeld(IllegalTransition):
    """A dispute is freezing the payment."""
    code = 'payment_held'


class Unauthorized(LifecycleError):
    code = 'unauthorized'
    status_code = status.HTTP_403_FORBIDDEN


class InvalidArgument(LifecycleError):
    code = 'invalid_argument'
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidState(LifecycleError):
    code = 'invalid_state'
    status_code = status.HTTP_409_CONFLICT


class DuplicateApplication(LifecycleError):
    code = 'duplicate_application'
    status_code = status.HTTP_409_CONFLICT


class DuplicatePayment(LifecycleError):
    code = 'duplicate_payment'
    status_code = status.HTTP_409_CONFLICT


class DuplicateDispute(LifecycleError):
    code = 'duplicate_dispute'
    status_code = status.HTTP_409_CONFLICT


class AlreadyAssigned(LifecycleError):
    code = 'already_assigned'
    status_code = status.HTTP_409_CONFLICT


class NotFound(LifecycleError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
