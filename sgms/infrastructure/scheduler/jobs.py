from sgms.core.config import scheduler_logger
from sgms.core.db import AsyncSessionLocal
from sgms.core.db.crud import otp_record_db, refresh_token_db


async def purge_stale_otps() -> int:
    """
    Periodic task to hard-delete OTP records that expired or were used.

    Returns:
        int: The number of records removed.
    """
    async with AsyncSessionLocal.begin() as session:
        scheduler_logger.info("Starting purge of stale OTP records")
        deleted_count = await otp_record_db.delete_stale(session, commit_self=False)
        scheduler_logger.info(
            f"Completed purge of stale OTP records. Deleted {deleted_count} record(s)."
        )
    return deleted_count


async def cleanup_expired_refresh_tokens(retention_days: int = 7) -> int:
    """
    Periodic task to hard-delete refresh tokens that expired or were revoked
    more than ``retention_days`` ago.

    Returns:
        int: The number of tokens removed.
    """
    async with AsyncSessionLocal.begin() as session:
        scheduler_logger.info(
            f"Starting cleanup of refresh tokens older than {retention_days} days"
        )
        deleted_count = await refresh_token_db.delete_expired(
            session, retention_days=retention_days, commit_self=False
        )
        scheduler_logger.info(
            f"Completed cleanup of refresh tokens. Deleted {deleted_count} record(s)."
        )
    return deleted_count
