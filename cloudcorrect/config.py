from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CLOUDCORRECT_",
        "extra": "ignore",
    }

    # Storage
    db_path: str = "data/cloudcorrect.db"
    registry_path: str = "invariants.yaml"  # YAML seed for accounts / groups / checks

    # AWS
    default_region: str = "us-east-1"  # also used for global services (Route53, IAM)
    provider_connect_timeout: float = 5.0
    provider_read_timeout: float = 15.0
    sts_session_name: str = "CloudCorrectSession"

    # Network probes
    http_probe_timeout: float = 5.0
    ping_timeout: int = 2  # seconds, passed to ping -W

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_workers: int = 4

    # Alerts
    ses_region: str = "us-east-1"
    ses_sender_email: str = "no-reply@cloudcorrect.local"
    app_url: str = "http://localhost:8800"  # dashboard link in alert mails
    slack_webhook_url: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()
