"""One-time codes for registration and password reset."""

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

logger = logging.getLogger(__name__)

OTP_VALIDITY_MINUTES = 5


class OtpPurpose(str, Enum):
    """What a code was issued for."""

    REGISTRATION = "registration"
    PASSWORD_RESET = "password_reset"


class OtpFailure(str, Enum):
    """Why a code was rejected."""

    INVALID = "invalid"
    USED = "used"
    EXPIRED = "expired"


class OtpVerificationError(Exception):
    """Raised when a submitted code cannot be accepted."""

    def __init__(self, reason: OtpFailure, message: str) -> None:
        self.reason = reason
        super().__init__(message)


@dataclass
class OtpRecord:
    """An issued code."""

    email: str
    code: str
    purpose: OtpPurpose
    created_at: datetime
    expires_at: datetime
    is_used: bool = False
    used_at: datetime | None = None


def generate_otp() -> str:
    """Generate a 4-digit code in 1000..9999."""
    return str(secrets.randbelow(9000) + 1000)


class OtpStore:
    """Thread-safe in-memory OTP records.

    Issuing a new code for an email and purpose marks every earlier unused
    code for the same pair as used, so only the latest code verifies.
    """

    def __init__(self, validity_minutes: int = OTP_VALIDITY_MINUTES) -> None:
        self._validity = timedelta(minutes=validity_minutes)
        self._records: list[OtpRecord] = []
        self._lock = threading.Lock()

    def issue(self, email: str, purpose: OtpPurpose, now: datetime | None = None) -> OtpRecord:
        """Issue a fresh code.

        Args:
            email: Address the code is sent to.
            purpose: Registration or password reset.
            now: Reference time, defaults to the current time.

        Returns:
            The new record.
        """
        now = now or datetime.now()
        email = email.lower()
        record = OtpRecord(
            email=email,
            code=generate_otp(),
            purpose=purpose,
            created_at=now,
            expires_at=now + self._validity,
        )
        with self._lock:
            for existing in self._records:
                if existing.email == email and existing.purpose == purpose and not existing.is_used:
                    existing.is_used = True
                    existing.used_at = now
            self._records.append(record)
        logger.info("OTP issued (email=%s, purpose=%s)", email, purpose.value)
        return record

    def verify(
        self, email: str, code: str, purpose: OtpPurpose, now: datetime | None = None
    ) -> OtpRecord:
        """Consume a code.

        Returns:
            The record, now marked used.

        Raises:
            OtpVerificationError: If no matching code exists, it was already
                used, or it has expired.
        """
        now = now or datetime.now()
        email = email.lower()
        with self._lock:
            matches = [
                r
                for r in self._records
                if r.email == email and r.code == code and r.purpose == purpose
            ]
            if not matches:
                raise OtpVerificationError(OtpFailure.INVALID, "Invalid OTP")
            record = matches[-1]
            if record.is_used:
                raise OtpVerificationError(OtpFailure.USED, "OTP has already been used")
            if now > record.expires_at:
                raise OtpVerificationError(OtpFailure.EXPIRED, "OTP has expired")
            record.is_used = True
            record.used_at = now
        logger.info("OTP verified (email=%s, purpose=%s)", email, purpose.value)
        return record

    def release(self, record: OtpRecord) -> None:
        """Return a consumed code to unused, e.g. after a failed follow-up."""
        with self._lock:
            record.is_used = False
            record.used_at = None
        logger.info("OTP released (email=%s, purpose=%s)", record.email, record.purpose.value)

    def cleanup_expired(self, now: datetime | None = None) -> int:
        """Drop expired records.

        Returns:
            Number of records removed.
        """
        now = now or datetime.now()
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.expires_at >= now]
            return before - len(self._records)
