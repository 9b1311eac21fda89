"""
Tests for OTP email rendering and hand-off to the email provider.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def renderer():
    from sgms.core.config import settings
    from sgms.core.services.template import Renderer

    Renderer.initialize(settings.TEMPLATE_DIR)
    return Renderer


@pytest.fixture
def transport():
    mock = MagicMock()
    mock.send_transactional_email = AsyncMock(return_value={"messageId": "<1@brevo>"})
    return mock


class TestSendOTPEmail:
    @pytest.mark.asyncio
    async def test_registration_email(self, renderer, transport):
        from sgms.core.config import settings
        from sgms.core.enums import OTPPurpose
        from sgms.core.services.email import EmailService

        service = EmailService(renderer=renderer, transport=transport)

        sent = await service.send_otp_email(
            "bob@example.com", "482913", "Bob", OTPPurpose.REGISTRATION
        )

        assert sent is True
        kwargs = transport.send_transactional_email.await_args.kwargs
        assert kwargs["subject"] == f"Verify your email - {settings.APP_NAME}"
        assert kwargs["to"].to[0].email == "bob@example.com"
        assert kwargs["to"].to[0].name == "Bob"
        assert "482913" in kwargs["htmlContent"]
        assert "482913" in kwargs["textContent"]
        assert "complete your registration" in kwargs["textContent"]
        assert f"{settings.OTP_EXPIRY_MINUTES} minutes" in kwargs["textContent"]

    @pytest.mark.asyncio
    async def test_password_reset_email_without_name(self, renderer, transport):
        from sgms.core.enums import OTPPurpose
        from sgms.core.services.email import EmailService

        service = EmailService(renderer=renderer, transport=transport)

        await service.send_otp_email(
            "bob@example.com", "482913", purpose=OTPPurpose.PASSWORD_RESET
        )

        kwargs = transport.send_transactional_email.await_args.kwargs
        assert kwargs["subject"].startswith("Password reset code")
        assert "Hi there" in kwargs["textContent"]
        assert "reset your password" in kwargs["textContent"]

    @pytest.mark.asyncio
    async def test_name_is_escaped_in_html(self, renderer, transport):
        from sgms.core.services.email import EmailService

        service = EmailService(renderer=renderer, transport=transport)

        await service.send_otp_email("bob@example.com", "482913", "<b>Bob</b>")

        html = transport.send_transactional_email.await_args.kwargs["htmlContent"]
        assert "<b>Bob</b>" not in html
        assert "&lt;b&gt;Bob&lt;/b&gt;" in html

    @pytest.mark.asyncio
    async def test_provider_failure_returns_false(self, renderer, transport):
        from sgms.core.exceptions.types import ExternalServiceException
        from sgms.core.services.email import EmailService

        transport.send_transactional_email.side_effect = ExternalServiceException()
        service = EmailService(renderer=renderer, transport=transport)

        assert await service.send_otp_email("bob@example.com", "482913") is False

    @pytest.mark.asyncio
    async def test_uninitialized_renderer_returns_false(self, transport):
        from sgms.core.services.email import EmailService
        from sgms.core.services.template import Renderer

        class BlankRenderer(Renderer):
            _env = None

        service = EmailService(renderer=BlankRenderer, transport=transport)

        assert await service.send_otp_email("bob@example.com", "482913") is False
        transport.send_transactional_email.assert_not_awaited()


class TestOTPDeliveryThroughService:
    @pytest.mark.asyncio
    async def test_otp_service_raises_when_email_raises(self, db_session):
        from sgms.core.enums import OTPPurpose
        from sgms.core.exceptions.types import EmailDeliveryException
        from sgms.core.services.otp import OTPService

        email_service = MagicMock()
        email_service.send_otp_email = AsyncMock(side_effect=RuntimeError("boom"))
        service = OTPService(email_service=email_service)

        with pytest.raises(EmailDeliveryException):
            await service.create(db_session, "bob@example.com", OTPPurpose.REGISTRATION)
