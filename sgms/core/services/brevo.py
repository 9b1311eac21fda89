import asyncio
import random
from typing import Any

from fastapi import status as http_status
import httpx
from pydantic import BaseModel

from sgms.core.config import brevo_logger, settings
from sgms.core.exceptions.types import ExternalServiceException


class Contact(BaseModel):
    email: str
    name: str | None = None


class ListContact(BaseModel):
    to: list[Contact]


class BrevoService:
    """Thin client for Brevo's transactional email endpoint."""

    _base_url: str = settings.BREVO_BASE_URL
    _api_key: str = settings.BREVO_API_KEY
    _sender_email: str = settings.BREVO_SENDER_EMAIL
    _sender_name: str = settings.BREVO_SENDER_NAME
    _client: httpx.AsyncClient | None = None

    # Bounded retries + backoff
    _BACKOFF_BASE: float = 3.0
    _BACKOFF_MAX: float = 60.0
    _JITTER: float = 0.2  # +/-20%

    @classmethod
    def _init_client(cls) -> None:
        if cls._client is None:
            cls._client = httpx.AsyncClient(
                base_url=cls._base_url,
                timeout=httpx.Timeout(30.0),
            )
            brevo_logger.info("Brevo HTTP client initialized")

    @classmethod
    async def aclose(cls) -> None:
        """Close the shared HTTP client, if open."""
        if cls._client is not None:
            try:
                await cls._client.aclose()
            finally:
                cls._client = None
                brevo_logger.info("Brevo HTTP client closed")

    @classmethod
    async def init(
        cls,
        api_key: str | None = None,
        sender_email: str | None = None,
        sender_name: str | None = None,
    ) -> None:
        """
        Configure credentials and (re)open the HTTP client.

        Arguments left as None keep their current values.
        """
        if api_key is not None:
            cls._api_key = api_key
        if sender_email is not None:
            cls._sender_email = sender_email
        if sender_name is not None:
            cls._sender_name = sender_name
        await cls.aclose()
        cls._init_client()

    @classmethod
    def _compute_backoff(
        cls, attempt: int, err_headers: httpx.Headers | None = None
    ) -> float:
        """
        Seconds to wait before retry number ``attempt`` (1-based).

        Honors Brevo's ``x-sib-ratelimit-reset`` header when present, otherwise
        exponential backoff capped at ``_BACKOFF_MAX`` with multiplicative jitter.
        """
        if err_headers and "x-sib-ratelimit-reset" in err_headers:
            try:
                return float(err_headers.get("x-sib-ratelimit-reset"))
            except ValueError:
                pass
        base = min(cls._BACKOFF_BASE * (2 ** (attempt - 1)), cls._BACKOFF_MAX)
        jitter = random.uniform(1 - cls._JITTER, 1 + cls._JITTER)
        return base * jitter

    @classmethod
    def _auth_headers(cls) -> dict[str, str]:
        return {
            "api-key": cls._api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @classmethod
    async def _request(
        cls,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        max_attempts: int = 3,
    ) -> dict[str, Any] | str:
        """
        Call the Brevo API with retries.

        5xx, 429 and network errors are retried up to ``max_attempts`` with
        backoff. Other 4xx responses fail immediately.

        Returns:
            dict[str, Any] | str: Parsed JSON body, or raw text.

        Raises:
            ExternalServiceException: When the request fails for good.
        """
        if cls._client is None:
            cls._init_client()
        assert cls._client is not None

        for attempt in range(1, max_attempts + 1):
            try:
                resp: httpx.Response = await cls._client.request(
                    method, endpoint, headers=cls._auth_headers(), json=json
                )
                resp.raise_for_status()
                try:
                    body = resp.json()
                except ValueError:
                    body = resp.text

                brevo_logger.info(f"Brevo response: {body}")
                return body

            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                try:
                    err_body = exc.response.json()
                except ValueError:
                    err_body = exc.response.text

                if status >= 500 or status == 429:
                    wait = cls._compute_backoff(
                        attempt, exc.response.headers if status == 429 else None
                    )
                    brevo_logger.warning(
                        f"{status} from Brevo; attempt {attempt}/{max_attempts}; wait={wait:.1f}s; body={err_body}"
                    )
                    if attempt < max_attempts:
                        await asyncio.sleep(wait)
                        continue
                    brevo_logger.error(f"Brevo error after retries: {status}: {err_body}")
                    raise ExternalServiceException(
                        f"Email provider error after retries: {status}"
                    ) from exc

                brevo_logger.error(f"4xx error {status}: {err_body}")
                raise ExternalServiceException(
                    f"Email provider rejected the request: {status}",
                    status_code=http_status.HTTP_502_BAD_GATEWAY,
                ) from exc

            except (httpx.TimeoutException, httpx.TransportError) as exc:
                wait = cls._compute_backoff(attempt)
                brevo_logger.warning(
                    f"Timeout/transport error; attempt {attempt}/{max_attempts}; wait={wait:.1f}s; err={exc}"
                )
                if attempt < max_attempts:
                    await asyncio.sleep(wait)
                    continue
                brevo_logger.error(f"Network error after retries: {exc}")
                raise ExternalServiceException(
                    "Email provider unreachable after retries"
                ) from exc

        raise ExternalServiceException("Email provider returned no response")

    @classmethod
    async def send_transactional_email(
        cls,
        subject: str,
        to: ListContact,
        sender: Contact | None = None,
        textContent: str | None = None,
        htmlContent: str | None = None,
    ) -> dict[str, Any] | str:
        """
        Send one transactional email.

        Args:
            subject (str): Subject line.
            to (ListContact): Recipients.
            sender (Contact | None): Defaults to the configured sender.
            textContent (str | None): Plain-text body.
            htmlContent (str | None): HTML body.

        Returns:
            dict[str, Any] | str: The Brevo API response.

        Raises:
            ValueError: If neither body is given.
        """
        if not htmlContent and not textContent:
            raise ValueError("Either htmlContent or textContent must be provided")
        sender = sender or Contact(email=cls._sender_email, name=cls._sender_name)
        payload: dict[str, Any] = {
            "sender": sender.model_dump(exclude_none=True),
            "subject": subject,
            **to.model_dump(exclude_none=True),
        }
        if textContent:
            payload["textContent"] = textContent
        if htmlContent:
            payload["htmlContent"] = htmlContent

        return await cls._request(method="POST", endpoint="/smtp/email", json=payload)


__all__ = ["BrevoService", "Contact", "ListContact"]
