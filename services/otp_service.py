import secrets
from datetime import datetime, timedelta
from typing import Callable
from argon2 import PasswordHasher
from sqlalchemy.exc import SQLAlchemyError
import logging

from argon2.exceptions import (
    VerifyMismatchError,
    VerificationError,
    InvalidHash,
)

from config import OTP_EMAIL_SUBJECT, OTP_LIFETIME_MINUTES
from database import utc_now
from errors import (
    DeadlineExceeded,
    Internal,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    TransportError,
)
from services.email_service import render_verification_email
from services.otp_store import OTPStore

logger = logging.getLogger("email_otp_api.otp")

ph = PasswordHasher()

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    # Leading digit is never zero, so the code is always six characters
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def is_otp_expired(created_at: datetime | None, now: datetime, lifetime_minutes: int = OTP_LIFETIME_MINUTES) -> bool:
    if created_at is None:
        return True
    return now - created_at > timedelta(minutes=lifetime_minutes)


class OTPService:
    """Issues codes by email and verifies them once.

    ``store`` is an :class:`OTPStore` and ``sender`` anything with a
    ``send(to, subject, html_body, text_body)`` method that raises
    :class:`TransportError` on failure.
    """

    def __init__(
        self,
        store: OTPStore,
        sender,
        lifetime_minutes: int = OTP_LIFETIME_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.sender = sender
        self.lifetime_minutes = lifetime_minutes
        self.clock = clock

    def issue(self, email: str | None) -> dict:
        if not email:
            raise InvalidArgument("Email is required")

        otp = generate_otp()
        hashed = ph.hash(otp)

        try:
            self.store.put(email, hashed)
        except SQLAlchemyError:
            logger.exception(f"Failed to store OTP for email={email}")
            raise Internal("Failed to send OTP")

        html_body, text_body = render_verification_email(otp, self.lifetime_minutes)
        try:
            message_id = self.sender.send(email, OTP_EMAIL_SUBJECT, html_body, text_body)
        except TransportError:
            logger.error(f"OTP delivery failed for email={email}, discarding stored OTP")
            self._discard(email, hashed)
            raise Internal("Failed to send OTP")

        logger.info(f"OTP sent successfully to {email}, Message ID: {message_id}")
        return {"message": "OTP sent successfully!"}

    def verify(self, email: str | None, otp: str | None) -> dict:
        """
            Verify the submitted OTP against the stored hashed OTP for the given email.
            Raises an OTPError if verification fails.
            Deletes the OTP on success and on expiry, keeps it on a mismatch.
        """
        if not email or not otp:
            raise InvalidArgument("Email and OTP required")

        try:
            entry = self.store.get(email)
        except SQLAlchemyError:
            logger.exception(f"Failed to read OTP for email={email}")
            raise Internal("Failed to verify OTP")

        if entry is None:
            logger.warning(f"OTP verification failed: no OTP found for email={email}")
            raise NotFound("No OTP found for this email")

        if is_otp_expired(entry.created_at, self.clock(), self.lifetime_minutes):
            self._discard(email, entry.code_hash)
            logger.warning(f"OTP verification failed: OTP expired for email={email}")
            raise DeadlineExceeded("OTP expired, please request again")

        try:
            ph.verify(entry.code_hash, otp)
        except VerifyMismatchError:
            logger.warning(f"OTP mismatch for email={email}")
            raise PermissionDenied("Invalid OTP")

        except InvalidHash:
            # Stored hash is corrupted (should never happen unless storage corrupted)
            self._discard(email, entry.code_hash)
            logger.error(f"OTP verification failed due to invalid hash for email={email}")
            raise Internal("Verification system error. Please request a new code.")

        except VerificationError:
            logger.exception(f"General Argon2 verification error for email={email}")
            raise Internal("Verification failed. Please request a new code.")

        # Only remove the record that was actually checked
        try:
            deleted = self.store.delete_if_matches(email, entry.code_hash)
            replaced = not deleted and self.store.get(email) is not None
        except SQLAlchemyError:
            logger.exception(f"Failed to delete OTP for email={email}")
            raise Internal("Failed to verify OTP")

        if not deleted:
            logger.warning(f"OTP for email={email} was consumed or replaced during verification")
            if replaced:
                raise PermissionDenied("Invalid OTP")
            raise NotFound("No OTP found for this email")

        logger.info(f"OTP verified for {email}")
        return {"verified": True, "message": "OTP verified successfully!"}

    def purge_expired(self) -> int:
        cutoff = self.clock() - timedelta(minutes=self.lifetime_minutes)
        return self.store.delete_expired(cutoff)

    def _discard(self, email: str, code_hash: str) -> None:
        try:
            self.store.delete_if_matches(email, code_hash)
        except SQLAlchemyError:
            logger.exception(f"Failed to discard OTP for email={email}")
