import shlex
import sys
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./data/tapaz.db"

    # Local state (job store, job logs, snapshots)
    data_dir: str = "data"
    job_retention: int = 50
    job_list_limit: int = 25

    # Collector
    collector_command: str = ""
    source_base_url: str = "https://tap.az"
    spawn_restricted: bool = False
    # Presence of these marks a serverless runtime that cannot host long-lived workers
    vercel: str = ""
    aws_lambda_function_name: str = ""

    # Reconciliation
    reconcile_fetch_chunk: int = 1000
    reconcile_write_batch: int = 500

    # Scheduler
    enable_scheduler: bool = False
    scheduler_poll_seconds: int = 60
    default_timezone: str = "Asia/Baku"

    # App
    environment: str = "development"

    # Admin
    admin_token: str = ""

    @model_validator(mode="after")
    def validate_admin_token(self) -> "Settings":
        """Ensure the admin API is protected outside development."""
        if self.environment != "development" and not self.admin_token:
            raise ValueError(
                f"ADMIN_TOKEN must be set in {self.environment} environment. "
                "Generate one with: openssl rand -hex 32"
            )
        return self

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def jobs_db_path(self) -> Path:
        return self.data_path / "admin-jobs.sqlite3"

    @property
    def job_log_dir(self) -> Path:
        return self.data_path / "admin-job-logs"

    @property
    def snapshot_dir(self) -> Path:
        return self.data_path / "snapshots"

    @property
    def collector_argv(self) -> list[str]:
        """Command line used to launch the external collection program."""
        if self.collector_command:
            return shlex.split(self.collector_command)
        return [sys.executable, "-m", "collector.tapaz_collector"]

    @property
    def workers_forbidden(self) -> bool:
        """True when this runtime must not spawn long-lived worker processes."""
        return self.spawn_restricted or bool(self.vercel) or bool(self.aws_lambda_function_name)

    @property
    def scheduler_enabled(self) -> bool:
        return self.environment == "production" or self.enable_scheduler

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
