"""
Tests for scheduler job registration.
"""

from unittest.mock import MagicMock, patch


class TestScheduleJobs:
    def test_purge_stale_otps_job(self):
        from apscheduler.triggers.interval import IntervalTrigger

        from sgms.infrastructure.scheduler import main
        from sgms.infrastructure.scheduler.jobs import purge_stale_otps

        mock_scheduler = MagicMock()
        with patch.object(main, "scheduler", mock_scheduler):
            main.schedule_purge_stale_otps_job(interval_minutes=15)

        kwargs = mock_scheduler.add_job.call_args.kwargs
        assert mock_scheduler.add_job.call_args.args[0] is purge_stale_otps
        assert kwargs["id"] == "purge_stale_otps_job"
        assert kwargs["replace_existing"] is True
        assert isinstance(kwargs["trigger"], IntervalTrigger)
        assert kwargs["trigger"].interval.total_seconds() == 15 * 60

    def test_cleanup_refresh_tokens_job(self):
        from apscheduler.triggers.cron import CronTrigger

        from sgms.infrastructure.scheduler import main
        from sgms.infrastructure.scheduler.jobs import cleanup_expired_refresh_tokens

        mock_scheduler = MagicMock()
        with patch.object(main, "scheduler", mock_scheduler):
            main.schedule_cleanup_expired_refresh_tokens_job(retention_days=3)

        kwargs = mock_scheduler.add_job.call_args.kwargs
        assert mock_scheduler.add_job.call_args.args[0] is cleanup_expired_refresh_tokens
        assert kwargs["id"] == "cleanup_expired_refresh_tokens_job"
        assert kwargs["kwargs"] == {"retention_days": 3}
        assert isinstance(kwargs["trigger"], CronTrigger)

    def test_initialize_scheduler_registers_all_jobs(self):
        from sgms.infrastructure.scheduler import main

        mock_scheduler = MagicMock()
        with patch.object(main, "scheduler", mock_scheduler):
            main.initialize_scheduler()

        ids = {call.kwargs["id"] for call in mock_scheduler.add_job.call_args_list}
        assert ids == {"purge_stale_otps_job", "cleanup_expired_refresh_tokens_job"}
