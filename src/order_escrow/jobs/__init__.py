"""Scheduled jobs (run from cron via the CLI or the admin API)."""
