"""
Refresh token model for rotation and revocation.

"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sgms.core.db.models.base import BaseModel
from sgms.core.utils import ensure_utc

if TYPE_CHECKING:
    from sgms.core.db.models.user import User


class RefreshToken(BaseModel):
    """
    Server-side record of an issued refresh token.

    Every refresh token is a signed JWT with a unique ``jti``. Its record is
    revoked when the token is rotated or the user logs out, so a replayed old
    token is refused even though its signature is still valid.

    Attributes:
        user_id: Owner of the token.
        jti: The token's ``jti`` claim.
        token_hash: SHA256 of the encoded token (the plain token is never stored).
        expires_at: Mirrors the token's ``exp`` claim.
        device_info: User agent / client address captured at issuance.
        revoked_at: When the token was revoked (None while valid).
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    jti: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        nullable=False,
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    device_info: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="refresh_tokens",
    )

    def __repr__(self) -> str:
        return (
            f"<RefreshToken(id={self.id}, user_id={self.user_id}, "
            f"expires_at={self.expires_at}, revoked={self.revoked_at is not None})>"
        )

    @property
    def is_valid(self) -> bool:
        """Not revoked and not expired."""
        return self.revoked_at is None and ensure_utc(self.expires_at) > datetime.now(
            timezone.utc
        )
