"""
OTP record model for one-time email verification codes.

"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sgms.core.db.models.base import BaseModel
from sgms.core.enums import OTPPurpose


class OTPRecord(BaseModel):
    """
    A one-time code sent to an email address for a given purpose.

    Codes are stored as HMAC-SHA256 hashes so they stay queryable without
    keeping the plain value. A record is single-use (``used_at``), expires at
    ``expires_at`` and accepts at most ``OTP_MAX_ATTEMPTS`` failed guesses.

    Attributes:
        email: Address the code was sent to.
        purpose: What the code confirms (registration, password reset).
        code_hash: HMAC-SHA256 hex digest of the code.
        attempts: Failed verification attempts so far.
        used_at: When the code was consumed (None while unused).
        expires_at: When the code stops being accepted.
        last_sent_at: When the current code was last emailed (resend cooldown).
        payload: Data staged until the code is confirmed, e.g. a pending
            registration. Never contains a plain password.
    """

    __tablename__ = "otp_records"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    purpose: Mapped[OTPPurpose] = mapped_column(
        Enum(OTPPurpose, native_enum=False, name="otp_purpose"),
        nullable=False,
    )

    code_hash: Mapped[str] = mapped_column(
        String(64),  # SHA256 hex digest is 64 characters
        nullable=False,
        index=True,
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    last_sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<OTPRecord(id={self.id}, email={self.email}, purpose={self.purpose}, "
            f"attempts={self.attempts}, used={self.used_at is not None})>"
        )


__all__ = ["OTPRecord"]
