"""SQLGate configuration — loaded from environment / .env file."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SQLGATE_", extra="ignore")

    env: str = "development"
    secret_key: str = "change-me"
    database_url: str = "sqlite+aiosqlite:///./sqlgate.db"
    log_level: str = "INFO"

    # Approval routing: team | role | team_then_role
    approver_policy: str = "team_then_role"

    # Per-target pool defaults (overridable on each target)
    pool_min_size: int = 1
    pool_max_size: int = 5
    pool_timeout: float = 30.0  # seconds to wait for a free connection
    pool_idle_timeout: int = 60  # seconds before an idle connection is recycled
    pool_close_grace: float = 10.0  # drain time per pool at shutdown
    probe_timeout: float = 10.0

    # Execution
    preview_row_limit: int = 100
    backup_schema: str | None = None  # None = snapshot next to the live table


settings = Settings()
