from sgms.core.db.models.otp import OTPRecord
from sgms.core.db.models.refresh_token import RefreshToken
from sgms.core.db.models.user import User

__all__ = [
    "OTPRecord",
    "RefreshToken",
    "User",
]
