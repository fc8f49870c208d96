# eshaafi/exceptions.py
# Typed failures raised by the booking engine. Routers translate them to HTTP
# responses; nothing below the router layer imports FastAPI.


class BookingEngineError(Exception):
    """Base class for every error the engine raises on purpose."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CRUDError(BookingEngineError):
    """Persistence failure. The transaction has been rolled back."""
    status_code = 500


class ValidationError(BookingEngineError):
    status_code = 400


class NotFoundError(BookingEngineError):
    status_code = 404


class ForbiddenError(BookingEngineError):
    status_code = 403


class NotOwnedError(ForbiddenError):
    """The resource exists but belongs to another doctor or patient."""


class InvalidStateError(BookingEngineError):
    """The resource is not in a state that allows the operation."""
    status_code = 400


class InvalidTransitionError(BookingEngineError):
    status_code = 409


class ConflictError(BookingEngineError):
    status_code = 409


class VideoProvisioningError(BookingEngineError):
    """The video provider could not create a room or a guest join code."""
    status_code = 502
