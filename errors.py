from fastapi import status


class OTPError(Exception):
    """Base error for OTP operations.

    Each subclass carries a stable ``code`` for API clients and the HTTP
    status the API layer responds with.
    """

    code: str = "internal"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidArgument(OTPError):
    code = "invalid-argument"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(OTPError):
    code = "not-found"
    status_code = status.HTTP_404_NOT_FOUND


class DeadlineExceeded(OTPError):
    code = "deadline-exceeded"
    status_code = status.HTTP_410_GONE


class PermissionDenied(OTPError):
    code = "permission-denied"
    status_code = status.HTTP_403_FORBIDDEN


class Internal(OTPError):
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class TransportError(Exception):
    """Raised by the email sender when a message could not be handed off."""
