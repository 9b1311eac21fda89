from sgms.core.db.crud.base import BaseDB
from sgms.core.db.crud.otp import OTPRecordDB
from sgms.core.db.crud.refresh_token import RefreshTokenDB
from sgms.core.db.crud.user import UserDB

# Global CRUD instances - use these instead of creating new instances
user_db = UserDB()
otp_record_db = OTPRecordDB()
refresh_token_db = RefreshTokenDB()

__all__ = [
    "BaseDB",
    "OTPRecordDB",
    "RefreshTokenDB",
    "UserDB",
    "user_db",
    "otp_record_db",
    "refresh_token_db",
]
