from sgms.infrastructure.scheduler.jobs import (
    cleanup_expired_refresh_tokens,
    purge_stale_otps,
)
from sgms.infrastructure.scheduler.main import scheduler, initialize_scheduler

__all__ = [
    "scheduler",
    "initialize_scheduler",
    "purge_stale_otps",
    "cleanup_expired_refresh_tokens",
]
