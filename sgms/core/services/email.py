"""
Email delivery for one-time codes.

``EmailService`` renders the Jinja2 templates and hands the result to
``BrevoService``. An instance is provided to request handlers through
``get_email_service`` so tests can swap in a fake.
"""

from typing import Any

from sgms.core.config import brevo_logger, settings
from sgms.core.enums import OTPPurpose
from sgms.core.services.brevo import BrevoService, Contact, ListContact
from sgms.core.services.template import Renderer
from sgms.core.utils import mask_otp


PURPOSE_TEXT = {
    OTPPurpose.REGISTRATION: "complete your registration",
    OTPPurpose.PASSWORD_RESET: "reset your password",
}

PURPOSE_SUBJECT = {
    OTPPurpose.REGISTRATION: "Verify your email",
    OTPPurpose.PASSWORD_RESET: "Password reset code",
}


class EmailService:
    def __init__(
        self,
        renderer: type[Renderer] = Renderer,
        transport: type[BrevoService] = BrevoService,
    ):
        self.renderer = renderer
        self.transport = transport

    async def send_email(
        self,
        email: str,
        subject: str,
        html_template: str,
        context: dict[str, Any],
        text_template: str | None = None,
        recipient_name: str | None = None,
    ) -> bool:
        """
        Render and send one email.

        Returns:
            bool: True if the provider accepted the message, False otherwise.
            Failures are logged, not raised.
        """
        try:
            html_content = await self.renderer.render_template(html_template, context)
            text_content = None
            if text_template:
                text_content = await self.renderer.render_template(text_template, context)

            await self.transport.send_transactional_email(
                subject=subject,
                to=ListContact(to=[Contact(email=email, name=recipient_name)]),
                htmlContent=html_content,
                textContent=text_content,
            )
            brevo_logger.info(f"Email sent: subject='{subject}', to='{email}'")
            return True
        except Exception as e:
            brevo_logger.error(
                f"Failed to send email: subject='{subject}', to='{email}', error={e}"
            )
            return False

    async def send_otp_email(
        self,
        email: str,
        code: str,
        name: str | None = None,
        purpose: OTPPurpose = OTPPurpose.REGISTRATION,
    ) -> bool:
        """
        Send a one-time code.

        Args:
            email: Recipient address.
            code: The plain code. Only its masked form is logged.
            name: Greeting name, if known.
            purpose: Selects the subject line and wording.

        Returns:
            bool: Whether delivery succeeded.
        """
        subject = f"{PURPOSE_SUBJECT.get(purpose, 'Verification code')} - {settings.APP_NAME}"
        context = {
            "app_name": settings.APP_NAME,
            "user_name": name,
            "otp_code": code,
            "purpose_text": PURPOSE_TEXT.get(purpose, "verify your request"),
            "expiry_minutes": settings.OTP_EXPIRY_MINUTES,
        }
        brevo_logger.info(
            f"Sending {purpose.value} code {mask_otp(code)} to {email}"
        )
        return await self.send_email(
            email=email,
            subject=subject,
            html_template="otp_email.html",
            text_template="otp_email.txt",
            context=context,
            recipient_name=name,
        )


__all__ = ["EmailService"]
