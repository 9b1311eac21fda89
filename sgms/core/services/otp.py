"""
One-time code lifecycle for email confirmation.

A code moves from active to exactly one of: used, expired, or exhausted
(too many failed guesses). Codes are stored as HMAC hashes, expire after
``OTP_EXPIRY_MINUTES`` and may be resent once per cooldown window, which
replaces the code value on the same record.

Example usage:
    otp_service = OTPService(email_service=EmailService())
    await otp_service.create(session, "a@x.com", OTPPurpose.REGISTRATION, {"username": "bob"})
    payload = await otp_service.verify(session, "a@x.com", "123456", OTPPurpose.REGISTRATION)
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.config import Settings, otp_logger, settings as default_settings
from sgms.core.db.crud import OTPRecordDB, otp_record_db
from sgms.core.db.models import OTPRecord
from sgms.core.enums import OTPPurpose
from sgms.core.exceptions.types import (
    EmailDeliveryException,
    OTPAlreadyUsedException,
    OTPExpiredException,
    OTPInvalidException,
    OTPMaxAttemptsException,
    OTPNotFoundException,
    TooManyRequestsException,
)
from sgms.core.services.email import EmailService
from sgms.core.utils import (
    ensure_utc,
    generate_otp_code,
    hmac_hash_otp,
    is_valid_otp_format,
    mask_otp,
)


class OTPService:
    def __init__(
        self,
        email_service: EmailService,
        config: Settings | None = None,
        records: OTPRecordDB = otp_record_db,
    ):
        self.email_service = email_service
        self.config = config or default_settings
        self.records = records

    @staticmethod
    def mask(code: str | None) -> str:
        return mask_otp(code)

    def is_valid_format(self, code: str | None) -> bool:
        return is_valid_otp_format(code, self.config.OTP_LENGTH)

    def _hash(self, code: str) -> str:
        return hmac_hash_otp(code, self.config.OTP_HMAC_SECRET)

    def _new_expiry(self, now: datetime) -> datetime:
        return now + timedelta(minutes=self.config.OTP_EXPIRY_MINUTES)

    async def _deliver(
        self, email: str, code: str, purpose: OTPPurpose, name: str | None
    ) -> None:
        try:
            sent = await self.email_service.send_otp_email(email, code, name, purpose)
        except Exception as e:
            otp_logger.error(f"OTP email to {email} raised: {type(e).__name__} - {e}")
            raise EmailDeliveryException() from e
        if not sent:
            otp_logger.error(f"OTP email to {email} was not delivered")
            raise EmailDeliveryException()

    async def create(
        self,
        session: AsyncSession,
        email: str,
        purpose: OTPPurpose,
        payload: dict[str, Any] | None = None,
        name: str | None = None,
        commit_self: bool = True,
    ) -> OTPRecord:
        """
        Issue a new code for (email, purpose) and email it.

        Stale (expired or used) records for the pair are purged first.

        Args:
            session: The database session.
            email: Recipient address.
            purpose: What the code confirms.
            payload: Data to hand back on successful verification.
            name: Greeting name for the email.
            commit_self: Commit when True, otherwise only flush.

        Returns:
            OTPRecord: The stored record.

        Raises:
            TooManyRequestsException: ``OTP_MAX_ACTIVE_CODES`` codes are already active.
            EmailDeliveryException: The email could not be sent. The caller's
                transaction should be rolled back so the record is discarded.
        """
        await self.records.delete_stale(session, email, purpose, commit_self=False)

        active = await self.records.count_active(session, email, purpose)
        if active >= self.config.OTP_MAX_ACTIVE_CODES:
            otp_logger.warning(
                f"OTP create refused: {active} active {purpose.value} codes for {email}"
            )
            raise TooManyRequestsException(
                "Too many active verification codes. Please use an existing code or wait for it to expire.",
                retry_after=self.config.OTP_EXPIRY_MINUTES * 60,
            )

        code = generate_otp_code(self.config.OTP_LENGTH)
        now = datetime.now(timezone.utc)
        record = await self.records.create(
            session,
            {
                "email": email,
                "purpose": purpose,
                "code_hash": self._hash(code),
                "attempts": 0,
                "expires_at": self._new_expiry(now),
                "last_sent_at": now,
                "payload": payload,
            },
            commit_self=False,
        )

        await self._deliver(email, code, purpose, name)
        if commit_self:
            await session.commit()

        otp_logger.info(
            f"OTP created: email={email}, purpose={purpose.value}, code={mask_otp(code)}"
        )
        return record

    async def verify(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        purpose: OTPPurpose,
        commit_self: bool = True,
    ) -> dict[str, Any]:
        """
        Check a submitted code and consume it on success.

        A wrong code adds one failed attempt to every active record for
        (email, purpose), so the limit holds across all codes sent to the
        address. That increment is committed immediately, so the
        session must not be inside an explicit ``session.begin()`` block.

        Args:
            session: The database session.
            email: Address the code was sent to.
            code: The submitted code.
            purpose: What the code confirms.
            commit_self: Commit the consumption when True, otherwise flush.

        Returns:
            dict[str, Any]: The staged payload (empty if none was staged).

        Raises:
            OTPInvalidException: Malformed or wrong code.
            OTPAlreadyUsedException: The code was already consumed.
            OTPExpiredException: The code is past its expiry.
            OTPMaxAttemptsException: The code has no attempts left.
        """
        if not self.is_valid_format(code):
            raise OTPInvalidException("Invalid OTP format.")

        now = datetime.now(timezone.utc)
        max_attempts = self.config.OTP_MAX_ATTEMPTS
        record = await self.records.get_by_hash(session, email, purpose, self._hash(code))

        if record is not None:
            if record.used_at is not None:
                raise OTPAlreadyUsedException()
            if ensure_utc(record.expires_at) <= now:
                raise OTPExpiredException()
            if record.attempts >= max_attempts:
                raise OTPMaxAttemptsException()

            consumed = await self.records.consume(
                session, record.id, max_attempts, commit_self=commit_self
            )
            if consumed is None:
                # Lost a race with a concurrent verification
                otp_logger.warning(f"OTP consume lost a race: email={email}")
                raise OTPAlreadyUsedException()

            otp_logger.info(
                f"OTP verified: email={email}, purpose={purpose.value}, code={mask_otp(code)}"
            )
            return dict(consumed.payload or {})

        # Charged to every active code for the pair
        attempts = await self.records.increment_attempts(
            session, email, purpose, max_attempts, commit_self=True
        )
        if attempts:
            otp_logger.warning(
                f"OTP verification failed: wrong code {mask_otp(code)} for {email} "
                f"(attempt {max(attempts)}/{max_attempts})"
            )
            raise OTPInvalidException()

        pending = await self.records.get_latest_pending(session, email, purpose)
        if pending is None:
            otp_logger.warning(f"OTP verification failed: no pending code for {email}")
            raise OTPInvalidException()
        if ensure_utc(pending.expires_at) <= now:
            raise OTPExpiredException()
        otp_logger.warning(f"OTP verification refused: attempts exhausted for {email}")
        raise OTPMaxAttemptsException()

    async def resend(
        self,
        session: AsyncSession,
        email: str,
        purpose: OTPPurpose,
        name: str | None = None,
        commit_self: bool = True,
    ) -> OTPRecord:
        """
        Replace the code on the latest pending record and email it again.

        The previous code value stops working and the attempt counter and
        expiry restart.

        Raises:
            OTPNotFoundException: Nothing pending for (email, purpose).
            TooManyRequestsException: Called within the cooldown window.
            EmailDeliveryException: The email could not be sent.
        """
        record = await self.records.get_latest_pending(session, email, purpose)
        if record is None:
            raise OTPNotFoundException()

        now = datetime.now(timezone.utc)
        cooldown = self.config.OTP_RESEND_COOLDOWN_SECONDS
        elapsed = (now - ensure_utc(record.last_sent_at)).total_seconds()
        if elapsed < cooldown:
            retry_after = max(1, int(cooldown - elapsed))
            raise TooManyRequestsException(
                f"Please wait {retry_after} seconds before requesting a new code.",
                retry_after=retry_after,
            )

        code = generate_otp_code(self.config.OTP_LENGTH)
        updated = await self.records.regenerate(
            session,
            record.id,
            self._hash(code),
            self._new_expiry(now),
            commit_self=False,
        )
        await self._deliver(email, code, purpose, name)
        if commit_self:
            await session.commit()

        otp_logger.info(
            f"OTP resent: email={email}, purpose={purpose.value}, code={mask_otp(code)}"
        )
        return updated or record

    async def get_status(
        self, session: AsyncSession, email: str, purpose: OTPPurpose
    ) -> dict[str, Any]:
        """Summarize the latest pending code for (email, purpose)."""
        record = await self.records.get_latest_pending(session, email, purpose)
        now = datetime.now(timezone.utc)
        if record is None or ensure_utc(record.expires_at) <= now:
            return {
                "has_active": False,
                "attempts_left": 0,
                "expires_in_seconds": 0,
                "can_resend_in_seconds": 0,
            }

        elapsed = (now - ensure_utc(record.last_sent_at)).total_seconds()
        return {
            "has_active": record.attempts < self.config.OTP_MAX_ATTEMPTS,
            "attempts_left": max(0, self.config.OTP_MAX_ATTEMPTS - record.attempts),
            "expires_in_seconds": int((ensure_utc(record.expires_at) - now).total_seconds()),
            "can_resend_in_seconds": max(
                0, int(self.config.OTP_RESEND_COOLDOWN_SECONDS - elapsed)
            ),
        }

    async def purge_stale(self, session: AsyncSession, commit_self: bool = True) -> int:
        """Hard-delete every expired or used record."""
        count = await self.records.delete_stale(session, commit_self=commit_self)
        otp_logger.info(f"Purged {count} stale OTP records")
        return count


__all__ = ["OTPService"]
